"""Per-session preferences and the sliding-window request counter."""

from novachat.db.models import SessionPreference
from novachat.db.store import JsonStore
from novachat.errors import RateLimited

WINDOW_MS = 24 * 60 * 60 * 1000


class PreferenceStore:
    def __init__(self, store: JsonStore):
        self._store = store

    async def get(self, session_id: str) -> SessionPreference:
        raw = await self._store.get(session_id)
        return SessionPreference.model_validate(raw) if raw else SessionPreference()

    async def set_model(self, session_id: str, model: str | None) -> SessionPreference:
        def apply(raw: dict | None) -> dict:
            pref = SessionPreference.model_validate(raw or {})
            pref.model = model
            return pref.model_dump()

        return SessionPreference.model_validate(await self._store.update(session_id, apply))

    async def register_request(
        self,
        session_id: str,
        now_ms: float,
        limit: int,
        window_ms: int = WINDOW_MS,
    ) -> int:
        """
        Count a request against the session's trailing window.

        Timestamps older than the window are pruned before the count and
        before the write. At or over the limit raises RateLimited and
        nothing is written. Returns the number of requests now in the window.
        """

        def apply(raw: dict | None) -> dict:
            pref = SessionPreference.model_validate(raw or {})
            recent = [t for t in pref.requests if now_ms - t < window_ms]
            if len(recent) >= limit:
                raise RateLimited()
            pref.requests = [*recent, now_ms]
            return pref.model_dump()

        updated = await self._store.update(session_id, apply)
        return len(updated["requests"])
