"""Incremental parsing of server-sent event frames from an upstream byte stream."""

import codecs
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DONE = "[DONE]"


@dataclass
class Frame:
    """The data payload of one event frame."""

    data: str

    @property
    def done(self) -> bool:
        return self.data == DONE


class SSEParser:
    """
    Turns network chunks into complete frames.

    Frames end at a blank line. Bytes are decoded with a stateful decoder
    so a multi-byte character split across chunks comes out whole.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[Frame]:
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def close(self) -> list[Frame]:
        """Flush the decoder and return any frame left without a trailing blank line."""
        self._buffer += self._decoder.decode(b"", final=True)
        frames = self._drain()
        tail, self._buffer = self._buffer, ""
        frame = _parse_frame(tail)
        if frame is not None:
            frames.append(frame)
        return frames

    def _drain(self) -> list[Frame]:
        self._buffer = self._buffer.replace("\r\n", "\n")
        *parts, self._buffer = self._buffer.split("\n\n")
        frames = []
        for part in parts:
            frame = _parse_frame(part)
            if frame is not None:
                frames.append(frame)
        return frames


def _parse_frame(block: str) -> Frame | None:
    data = []
    for line in block.strip().split("\n"):
        if line.startswith("data:"):
            data.append(line[len("data:"):].lstrip())
    if not data:
        return None
    return Frame("\n".join(data))


def delta_content(frame: Frame) -> str:
    """
    Extract choices[0].delta.content from a chat completion chunk.

    Unparseable frames are logged and yield an empty string.
    """
    try:
        payload = json.loads(frame.data)
    except json.JSONDecodeError as e:
        logger.warning("Dropping unparseable stream frame %r: %s", frame.data[:200], e)
        return ""
    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return content if isinstance(content, str) else ""
