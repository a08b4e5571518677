"""Chat and session history endpoints."""

import anyio
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from novachat.agent import ChatService, ReplyStream
from novachat.db import Stores, Turn, User
from novachat.errors import ValidationError

from .deps import (
    SessionRef,
    attach_session,
    get_chat_service,
    get_current_user,
    get_session_ref,
    get_stores,
)

router = APIRouter(prefix="/api", tags=["chat"])


# --- Schemas ---


class ChatRequest(BaseModel):
    message: str | None = None


class ChatResponse(BaseModel):
    reply: str


class SessionHistoryResponse(BaseModel):
    sessionId: str
    history: list[Turn]


class OkResponse(BaseModel):
    ok: bool = True


def _require_message(data: ChatRequest | None) -> str:
    if data is None or not data.message:
        raise ValidationError("message required")
    return data.message


class ReplyResponse(StreamingResponse):
    """
    Streams a ReplyStream and always finishes it.

    Starlette leaves the body iterator suspended when the server reports
    a disconnect by raising (ASGI spec 2.4), so finishing cannot rely on
    the iterator's own cleanup.
    """

    def __init__(self, reply: ReplyStream, **kwargs):
        super().__init__(reply, **kwargs)
        self.reply = reply

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.reply.finish()


# --- Routes ---


@router.post("/chat", response_model=ChatResponse)
async def chat(
    data: ChatRequest | None = None,
    session: SessionRef = Depends(get_session_ref),
    user: User | None = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict:
    """Send a message and get the full reply."""
    message = _require_message(data)
    reply = await service.reply(session.id, user, message)
    return {"reply": reply}


@router.post("/stream")
async def stream(
    data: ChatRequest | None = None,
    session: SessionRef = Depends(get_session_ref),
    user: User | None = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ReplyResponse:
    """
    Send a message and stream the reply as plain text fragments.

    The exchange is saved after the body ends, including a partial
    reply if the upstream or the client drops.
    """
    message = _require_message(data)
    reply = await service.stream(session.id, user, message)
    response = ReplyResponse(
        reply,
        media_type="text/plain; charset=utf-8",
        headers={"X-Accel-Buffering": "no"},
    )
    return attach_session(response, session)


@router.get("/session", response_model=SessionHistoryResponse)
async def get_session_history(
    session: SessionRef = Depends(get_session_ref),
    stores: Stores = Depends(get_stores),
) -> dict:
    """Get the current session id and its history."""
    history = await stores.sessions.history(session.id)
    return {"sessionId": session.id, "history": history}


@router.post("/session/clear", response_model=OkResponse)
async def clear_session(
    session: SessionRef = Depends(get_session_ref),
    stores: Stores = Depends(get_stores),
) -> dict:
    await stores.sessions.clear(session.id)
    return {"ok": True}
