"""Records persisted in the JSON stores."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Turn(BaseModel):
    """One message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


class User(BaseModel):
    """An account. Stored with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    password_hash: str = Field(alias="passwordHash")
    created_at: str = Field(
        alias="createdAt",
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )
    memory: list[str] = Field(default_factory=list)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class SessionPreference(BaseModel):
    """Per-session model override and request timestamps (epoch ms)."""

    model: str | None = None
    requests: list[float] = Field(default_factory=list)
