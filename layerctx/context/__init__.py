"""Layered context compaction: token estimation, archiving and retrieval."""

from layerctx.context.tokens import (
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
)
from layerctx.context.types import (
    ArchiveRecord,
    ContextApplication,
    RetrievalDecision,
    RetrievalResult,
    SessionContext,
    TokenUsage,
)

__all__ = [
    "ArchiveRecord",
    "ContextApplication",
    "RetrievalDecision",
    "RetrievalResult",
    "SessionContext",
    "TokenUsage",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "estimate_tokens",
]
