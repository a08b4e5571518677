"""Per-session model preference and upstream status."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from novachat.config import Settings, get_settings
from novachat.db import Stores

from .deps import SessionRef, get_session_ref, get_stores

router = APIRouter(tags=["preferences"])


class ModelRequest(BaseModel):
    model: str | None = None


class ModelResponse(BaseModel):
    ok: bool = True
    model: str | None


class UpstreamStatus(BaseModel):
    enabled: bool
    model: str
    envPath: str | None


@router.post("/session/model", response_model=ModelResponse)
async def set_session_model(
    data: ModelRequest | None = None,
    session: SessionRef = Depends(get_session_ref),
    stores: Stores = Depends(get_stores),
) -> dict:
    """Set the model override for this session (null clears it)."""
    model = data.model if data else None
    await stores.prefs.set_model(session.id, model)
    return {"ok": True, "model": model}


@router.get("/admin/openai-status", response_model=UpstreamStatus)
async def upstream_status(settings: Settings = Depends(get_settings)) -> dict:
    """Report whether the upstream is configured. Never exposes the key."""
    return {
        "enabled": settings.upstream_enabled,
        "model": settings.openai_model,
        "envPath": str(settings.env_path) if settings.env_path else None,
    }
