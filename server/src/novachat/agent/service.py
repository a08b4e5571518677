"""Chat dispatch: memory commands, rate limiting, relay or fallback, persistence."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

import anyio

from novachat.agent.fallback import fallback_respond
from novachat.agent.intents import Recall, Remember, classify, confirm_remember, format_memories
from novachat.agent.relay import CompletionRelay
from novachat.config import Settings
from novachat.db import Stores, Turn, User
from novachat.errors import StoreError

logger = logging.getLogger(__name__)

SLICE_CHARS = 40


async def sliced(text: str, size: int = SLICE_CHARS, delay: float = 0.0) -> AsyncIterator[str]:
    """Emit text in fixed-size slices, pausing between them."""
    for i in range(0, len(text), size):
        yield text[i:i + size]
        if delay:
            await asyncio.sleep(delay)


class ReplyStream:
    """
    An incremental reply on its way to the client.

    finish() releases the source and persists the exchange with whatever
    text was delivered. It runs once: when iteration ends for any reason
    (including cancellation), or from the response if the client goes
    away while the iterator is suspended.
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        on_finish: Callable[[str], Awaitable[None]],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self._source = source
        self._on_finish = on_finish
        self._on_close = on_close
        self._parts: list[str] = []
        self._finished = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for fragment in self._source:
                self._parts.append(fragment)
                yield fragment
        finally:
            with anyio.CancelScope(shield=True):
                await self.finish()

    async def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        try:
            if self._on_close is not None:
                await self._on_close()
        finally:
            await self._on_finish(self.text)


@dataclass
class _Prepared:
    turns: list[Turn]
    shortcut: str | None = None
    model: str | None = None


class ChatService:
    """
    Produces replies for a session.

    Order per request: memory commands (signed-in users only), then the
    rate limit, then the relay or the fallback responder. Nothing is
    persisted for a rejected request.
    """

    def __init__(
        self,
        settings: Settings,
        stores: Stores,
        relay: CompletionRelay,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.stores = stores
        self.relay = relay
        self._clock = clock

    async def _memory_reply(self, user: User | None, message: str) -> str | None:
        """Reply to a remember/recall command, or None to carry on as chat."""
        if user is None:
            return None
        intent = classify(message)
        try:
            if isinstance(intent, Remember):
                await self.stores.users.remember(user.id, intent.text)
                logger.info("Saved memory for user %s", user.id)
                return confirm_remember(intent.text)
            if isinstance(intent, Recall):
                current = await self.stores.users.get(user.id)
                return format_memories(current.memory if current else [])
        except Exception as e:
            logger.warning("Memory handling error, continuing as chat: %s", e)
        return None

    async def _model_for(self, session_id: str) -> str:
        pref = await self.stores.prefs.get(session_id)
        return pref.model or self.settings.openai_model

    async def _prepare(self, session_id: str, user: User | None, message: str) -> _Prepared:
        history = await self.stores.sessions.history(session_id)
        turns = [*history, Turn(role="user", content=message)]

        shortcut = await self._memory_reply(user, message)
        if shortcut is not None:
            return _Prepared(turns, shortcut=shortcut)

        try:
            await self.stores.prefs.register_request(
                session_id,
                now_ms=self._clock() * 1000,
                limit=self.settings.daily_request_limit,
            )
        except StoreError as e:
            logger.error("Could not record request for session %s: %s", session_id, e)
        return _Prepared(turns, model=await self._model_for(session_id))

    async def _persist(self, session_id: str, message: str, reply: str) -> None:
        """Save the exchange. A failed write is logged, never sent to the client."""
        try:
            await self.stores.sessions.append(
                session_id,
                Turn(role="user", content=message),
                Turn(role="assistant", content=reply),
            )
        except StoreError as e:
            logger.error("Could not save exchange for session %s: %s", session_id, e)

    async def reply(self, session_id: str, user: User | None, message: str) -> str:
        """Produce a full reply and record the exchange."""
        prepared = await self._prepare(session_id, user, message)
        if prepared.shortcut is not None:
            text = prepared.shortcut
        elif self.relay.enabled:
            text = await self.relay.complete(prepared.turns, prepared.model)
        else:
            text = fallback_respond(message)

        await self._persist(session_id, message, text)
        return text

    async def stream(self, session_id: str, user: User | None, message: str) -> ReplyStream:
        """
        Start an incremental reply.

        Rejections and upstream failures to open raise here, before any
        fragment exists.
        """
        prepared = await self._prepare(session_id, user, message)
        delay = self.settings.fallback_stream_delay

        async def persist(text: str) -> None:
            await self._persist(session_id, message, text)

        if prepared.shortcut is not None:
            return ReplyStream(sliced(prepared.shortcut, delay=delay), persist)
        if not self.relay.enabled:
            return ReplyStream(sliced(fallback_respond(message), delay=delay), persist)

        upstream = await self.relay.open_stream(prepared.turns, prepared.model)
        return ReplyStream(upstream.fragments(), persist, on_close=upstream.aclose)
