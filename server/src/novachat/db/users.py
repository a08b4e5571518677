"""User accounts: credentials and saved memories."""

import asyncio
from uuid import uuid4

import bcrypt

from novachat.db.models import User
from novachat.db.store import JsonStore
from novachat.errors import AuthError, ConflictError

BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def check_password(password: str, password_hash: str) -> bool:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(secret, password_hash.encode("ascii"))
    except ValueError:
        return False


def _same_username(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


class UserStore:
    """Users keyed by id, unique by case-insensitive username."""

    def __init__(self, store: JsonStore):
        self._store = store

    async def get(self, user_id: str) -> User | None:
        raw = await self._store.get(user_id)
        return User.model_validate(raw) if raw else None

    async def find_by_username(self, username: str) -> User | None:
        raw = await self._store.find(lambda u: _same_username(u.get("username", ""), username))
        return User.model_validate(raw) if raw else None

    async def create(self, username: str, password: str) -> User:
        """
        Create a user with a hashed password.

        Raises ConflictError if the username is taken (ignoring case).
        """
        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(id=str(uuid4()), username=username, password_hash=password_hash)

        def insert(data: dict) -> None:
            if any(_same_username(u.get("username", ""), username) for u in data.values()):
                raise ConflictError("username_taken")
            data[user.id] = user.to_record()

        await self._store.mutate(insert)
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """Return the matching user or raise AuthError('invalid_credentials')."""
        user = await self.find_by_username(username)
        if user is None:
            raise AuthError("invalid_credentials")
        ok = await asyncio.to_thread(check_password, password, user.password_hash)
        if not ok:
            raise AuthError("invalid_credentials")
        return user

    async def delete(self, user_id: str) -> bool:
        return await self._store.delete(user_id)

    async def remember(self, user_id: str, text: str) -> list[str]:
        """Append text to a user's memory list. Returns the updated list."""

        def append(raw: dict | None) -> dict:
            if raw is None:
                raise AuthError()
            raw["memory"] = [*raw.get("memory", []), text]
            return raw

        updated = await self._store.update(user_id, append)
        return updated["memory"]
