"""Stream module for incremental upstream parsing."""

from .sse import Frame, SSEParser, delta_content

__all__ = ["Frame", "SSEParser", "delta_content"]
