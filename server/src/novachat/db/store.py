"""Whole-file JSON key-value store."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, TypeVar

from novachat.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonStore:
    """
    A JSON object on disk, keyed by id.

    - A missing, empty or corrupt file reads as an empty mapping
    - Writes go to a temp file and are renamed over the original
    - update() holds the store lock across read-modify-write, so
      concurrent requests in this process cannot clobber each other
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()

    def _read_sync(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return {}
        try:
            data = json.loads(raw or "{}")
        except json.JSONDecodeError as e:
            logger.warning("Corrupt store %s, treating as empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_sync(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"could not write {self.path.name}") from e

    async def ensure(self) -> None:
        """Create the file (and its directory) if it does not exist."""
        if not self.path.exists():
            async with self._lock:
                await asyncio.to_thread(self._write_sync, {})

    async def read_all(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_sync)

    async def get(self, key: str) -> Any | None:
        return (await self.read_all()).get(key)

    async def put(self, key: str, value: Any) -> None:
        await self.update(key, lambda _: value)

    async def mutate(self, fn: Callable[[dict[str, Any]], T]) -> T:
        """
        Apply fn to the whole mapping in place and persist it.

        fn may raise to abort; nothing is written in that case.
        """
        async with self._lock:
            data = await asyncio.to_thread(self._read_sync)
            result = fn(data)
            await asyncio.to_thread(self._write_sync, data)
            return result

    async def update(self, key: str, fn: Callable[[Any | None], T]) -> T:
        """Replace the value at key with fn(current) and persist it."""

        def apply(data: dict[str, Any]) -> T:
            data[key] = fn(data.get(key))
            return data[key]

        return await self.mutate(apply)

    async def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it existed."""
        return await self.mutate(lambda data: data.pop(key, None) is not None)

    async def find(self, predicate: Callable[[Any], bool]) -> Any | None:
        """Return the first value matching predicate, or None."""
        for value in (await self.read_all()).values():
            if predicate(value):
                return value
        return None
