"""Novachat server."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from novachat.api import router
from novachat.config import get_settings
from novachat.db import stores_for
from novachat.errors import NovachatError, novachat_error_handler

logger = logging.getLogger("novachat")

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    current = app.dependency_overrides.get(get_settings, get_settings)()
    await stores_for(current.data_dir).ensure()
    if current.upstream_enabled:
        logger.info("OpenAI enabled (model=%s).", current.openai_model)
    else:
        logger.info("OpenAI not configured, using fallback responder.")
    yield


app = FastAPI(title="Novachat", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "invalid request", "detail": str(exc.errors())},
    )


app.add_exception_handler(NovachatError, novachat_error_handler)
app.include_router(router)


def run() -> None:
    """Entry point for the `novachat` command."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
