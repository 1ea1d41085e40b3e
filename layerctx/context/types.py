"""Data types for layered context compaction."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Layer = Literal["L0", "L1", "L2"]
QueryMode = Literal["broad", "structured", "precise"]
SummaryLevel = Literal["summary", "abstract"]


class ArchiveRecord(BaseModel):
    """A summarized, immutable block of aged-out messages."""

    model_config = ConfigDict(frozen=True)

    id: str
    chunk_start: int  # index of first message in the full history
    chunk_end: int  # exclusive
    raw_text: str
    summary_text: str
    abstract_text: str
    keywords: list[str] = Field(default_factory=list)  # top terms of abstract and summary
    summary_fallback_used: bool = False
    checksum: str
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def message_count(self) -> int:
        return self.chunk_end - self.chunk_start

    @property
    def index_text(self) -> str:
        """Text a query is scored against: abstract, summary and keywords."""
        parts = [self.abstract_text]
        if self.summary_text != self.abstract_text:
            parts.append(self.summary_text)
        if self.keywords:
            parts.append(" ".join(self.keywords))
        return "\n".join(p for p in parts if p)


class SessionContext(BaseModel):
    """Archive state of one conversation session."""

    session_key: str
    platform: str = ""
    chat_id: str = ""
    archives: list[ArchiveRecord] = Field(default_factory=list)
    archived_until: int = 0  # boundary between archived and raw history
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()


@dataclass
class SummaryResult:
    """Output of one summary or abstract generation."""
    text: str
    fallback_used: bool = False
    fallback_reason: str | None = None


@dataclass
class TokenUsage:
    """Estimated tokens before and after compaction."""
    before: int
    after: int
    savings: int = field(init=False)
    savings_ratio: float = field(init=False)

    def __post_init__(self) -> None:
        self.savings = self.before - self.after
        self.savings_ratio = self.savings / self.before if self.before > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "before": self.before,
            "after": self.after,
            "savings": self.savings,
            "savings_ratio": round(self.savings_ratio, 4),
        }


@dataclass
class ArchiveSelection:
    """An archive chosen for the prompt, at summary (L1) or raw (L2) depth."""
    archive_id: str
    layer: Layer
    content: str
    score: float
    tokens: int
    chunk_start: int
    chunk_end: int


@dataclass
class RetrievalDecision:
    """Which tier a query reached and why."""
    reached_layer: Layer
    selected_archive_ids: list[str] = field(default_factory=list)
    scores: dict[str, float] = field(default_factory=dict)
    query_mode: QueryMode = "broad"
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "reached_layer": self.reached_layer,
            "selected_archive_ids": list(self.selected_archive_ids),
            "scores": {k: round(v, 4) for k, v in self.scores.items()},
            "query_mode": self.query_mode,
            "reason": self.reason,
        }


@dataclass
class RetrievalResult:
    """Retriever output: the decision plus the selected content."""
    decision: RetrievalDecision
    selections: list[ArchiveSelection] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=lambda: TokenUsage(0, 0))
    layer_tokens: dict[str, int] = field(default_factory=dict)


@dataclass
class IndexSyncResult:
    """What one indexer pass changed."""
    created: list[ArchiveRecord] = field(default_factory=list)
    evicted: list[ArchiveRecord] = field(default_factory=list)
    fallback_events: list[str] = field(default_factory=list)
    reset: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.created or self.evicted or self.reset)


@dataclass
class ContextApplication:
    """Result of ``ContextManager.apply``."""
    applied: bool
    updated_messages: list[dict[str, Any]]
    retrieval: RetrievalResult
    prompt_usage: TokenUsage
    fallback_events: list[str] = field(default_factory=list)
    archived_message_count: int = 0
    truncated_messages: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "updated_messages": self.updated_messages,
            "retrieval": {
                "decision": self.retrieval.decision.to_dict(),
                "token_usage": self.retrieval.token_usage.to_dict(),
                "layer_tokens": dict(self.retrieval.layer_tokens),
            },
            "prompt_usage": self.prompt_usage.to_dict(),
            "fallback_events": list(self.fallback_events),
            "archived_message_count": self.archived_message_count,
            "truncated_messages": self.truncated_messages,
        }
