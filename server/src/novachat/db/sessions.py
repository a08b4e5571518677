"""Conversation history per session id."""

from novachat.db.models import Turn
from novachat.db.store import JsonStore


class SessionStore:
    """Ordered Turn lists keyed by session id."""

    def __init__(self, store: JsonStore):
        self._store = store

    async def history(self, session_id: str) -> list[Turn]:
        raw = await self._store.get(session_id) or []
        return [Turn.model_validate(t) for t in raw]

    async def append(self, session_id: str, *turns: Turn) -> list[Turn]:
        """Append turns to a session, creating it if needed."""
        new = [t.model_dump() for t in turns]
        raw = await self._store.update(session_id, lambda cur: (cur or []) + new)
        return [Turn.model_validate(t) for t in raw]

    async def clear(self, session_id: str) -> None:
        await self._store.put(session_id, [])
