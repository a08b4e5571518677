"""Error taxonomy and its HTTP mapping."""

from fastapi import Request
from fastapi.responses import JSONResponse


class NovachatError(Exception):
    """Base error. Subclasses set the HTTP status and the client-facing code."""

    status_code = 500
    error = "server error"

    def __init__(self, error: str | None = None, detail: str | None = None):
        super().__init__(error or self.error)
        if error is not None:
            self.error = error
        self.detail = detail

    def to_body(self) -> dict:
        body = {"error": self.error}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationError(NovachatError):
    """A required field is missing or malformed."""

    status_code = 400
    error = "invalid request"


class AuthError(NovachatError):
    """Bad credentials, or no authenticated user where one is needed."""

    status_code = 401
    error = "not_authenticated"


class ConflictError(NovachatError):
    status_code = 409
    error = "conflict"


class RateLimited(NovachatError):
    """The session used up its requests for the trailing window."""

    status_code = 429
    error = "rate_limited"


class UpstreamError(NovachatError):
    """The completion API answered with a non-success status or could not be reached."""

    status_code = 500

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(detail=message)
        self.status = status
        self.body = body


class StoreError(NovachatError):
    """A JSON store file could not be written."""


async def novachat_error_handler(request: Request, exc: NovachatError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())
