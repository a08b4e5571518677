"""Reply generation: upstream relay, fallback responder and chat dispatch."""

from .fallback import fallback_respond
from .relay import CompletionRelay, UpstreamStream
from .service import ChatService, ReplyStream

__all__ = ["ChatService", "CompletionRelay", "ReplyStream", "UpstreamStream", "fallback_respond"]
