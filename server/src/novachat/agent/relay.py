"""Completion relay: forwards a conversation to an OpenAI-compatible chat API."""

import logging
from contextlib import aclosing
from typing import AsyncIterator

import anyio
import httpx

from novachat.config import Settings
from novachat.db.models import Turn
from novachat.errors import UpstreamError
from novachat.stream import Frame, SSEParser, delta_content

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOKENS = 600


class UpstreamStream:
    """
    An open streaming completion.

    Iterate fragments() to receive text deltas in arrival order; the full
    reply so far is always available as .text. A transport failure ends
    the iteration instead of raising, leaving .text as the partial reply.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._parts: list[str] = []
        self.failed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def _frame_batches(self) -> AsyncIterator[list[Frame]]:
        parser = SSEParser()
        async for chunk in self._response.aiter_bytes():
            yield parser.feed(chunk)
        yield parser.close()

    async def fragments(self) -> AsyncIterator[str]:
        try:
            async with aclosing(self._frame_batches()) as batches:
                async for frames in batches:
                    for frame in frames:
                        # [DONE] ends the reply even if the connection stays open
                        if frame.done:
                            return
                        delta = delta_content(frame)
                        if delta:
                            self._parts.append(delta)
                            yield delta
        except httpx.HTTPError as e:
            self.failed = True
            logger.error("Upstream stream interrupted after %d chars: %s", len(self.text), e)
        finally:
            with anyio.CancelScope(shield=True):
                await self.aclose()

    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        await self._response.aclose()
        await self._client.aclose()


class CompletionRelay:
    """
    Sends a Turn list upstream, either for one full reply or as a stream.

    A transport can be injected (e.g. httpx.MockTransport in tests);
    otherwise httpx opens real connections.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.upstream_enabled

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.openai_base_url,
            headers={"Authorization": f"Bearer {self.settings.openai_api_key}"},
            timeout=self.settings.upstream_timeout,
            transport=self._transport,
        )

    def _payload(self, turns: list[Turn], model: str, stream: bool) -> dict:
        payload = {
            "model": model,
            "messages": [{"role": t.role, "content": t.content} for t in turns],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def complete(self, turns: list[Turn], model: str) -> str:
        """Fetch one full reply. Raises UpstreamError on failure."""
        logger.debug("Completion request: model=%s turns=%d", model, len(turns))
        async with self._client() as client:
            try:
                resp = await client.post("/chat/completions", json=self._payload(turns, model, False))
            except httpx.HTTPError as e:
                logger.error("Upstream request failed: %s", e)
                raise UpstreamError(f"upstream request failed: {e}") from e

            if not resp.is_success:
                body = resp.text
                logger.error("Upstream non-streaming error %s: %s", resp.status_code, body[:500])
                raise UpstreamError(
                    f"upstream returned {resp.status_code}",
                    status=resp.status_code,
                    body=body,
                )

            try:
                data = resp.json()
                content = data["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError):
                return ""
            return content.strip() if isinstance(content, str) else ""

    async def open_stream(self, turns: list[Turn], model: str) -> UpstreamStream:
        """
        Open a streaming completion.

        Raises UpstreamError before anything is emitted if the upstream
        can't be reached or answers with a non-success status.
        """
        logger.debug("Streaming request: model=%s turns=%d", model, len(turns))
        client = self._client()
        request = client.build_request(
            "POST", "/chat/completions", json=self._payload(turns, model, True)
        )
        try:
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error("Upstream stream request failed: %s", e)
            raise UpstreamError(f"upstream stream request failed: {e}") from e

        if not resp.is_success:
            try:
                body = (await resp.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            await resp.aclose()
            await client.aclose()
            logger.error("Upstream stream error %s: %s", resp.status_code, body[:500])
            raise UpstreamError(
                f"upstream stream returned {resp.status_code}",
                status=resp.status_code,
                body=body,
            )

        return UpstreamStream(client, resp)
