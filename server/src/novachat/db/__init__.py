"""Persistence for Novachat: JSON files keyed by id."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .models import SessionPreference, Turn, User
from .prefs import PreferenceStore
from .sessions import SessionStore
from .store import JsonStore
from .users import UserStore

SESSIONS_FILE = "sessions.json"
USERS_FILE = "users.json"
PREFS_FILE = "session_prefs.json"


@dataclass
class Stores:
    sessions: SessionStore
    users: UserStore
    prefs: PreferenceStore
    files: tuple[JsonStore, ...]

    async def ensure(self) -> None:
        """Create any missing store files."""
        for store in self.files:
            await store.ensure()


@lru_cache
def stores_for(data_dir: Path) -> Stores:
    """One set of stores (and their locks) per data directory."""
    sessions = JsonStore(data_dir / SESSIONS_FILE)
    users = JsonStore(data_dir / USERS_FILE)
    prefs = JsonStore(data_dir / PREFS_FILE)
    return Stores(
        sessions=SessionStore(sessions),
        users=UserStore(users),
        prefs=PreferenceStore(prefs),
        files=(sessions, users, prefs),
    )


__all__ = [
    "JsonStore",
    "PreferenceStore",
    "SessionPreference",
    "SessionStore",
    "Stores",
    "Turn",
    "User",
    "UserStore",
    "stores_for",
]
