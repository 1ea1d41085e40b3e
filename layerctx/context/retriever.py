"""Tiered retrieval over session archives (L0 -> L1 -> L2)."""

import re

from loguru import logger

from layerctx.config.schema import LayeredContextConfig
from layerctx.context.messages import context_frame_tokens, format_selection, selection_tokens
from layerctx.context.scoring import LexicalScoreProvider, ScoreProvider, clamp_score
from layerctx.context.tokens import estimate_message_tokens, estimate_messages_tokens, estimate_tokens
from layerctx.context.types import (
    ArchiveRecord,
    ArchiveSelection,
    QueryMode,
    RetrievalDecision,
    RetrievalResult,
    TokenUsage,
)

PRECISE_PATTERNS = [
    re.compile(
        r"\b[\w\-/]+\.(?:ts|tsx|js|jsx|mjs|py|json|ya?ml|toml|md|go|rs|java|kt|rb|sh|sql|css|html|lock|log)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:exact|exactly|verbatim|line|lines|stack|stacktrace|traceback|error|errors|"
        r"exception|snippet|parameter|argument|function|class|api|trace|status code)\b",
        re.IGNORECASE,
    ),
    re.compile(r"`[^`]+`"),
    re.compile(r"(?:^|\s)\.{0,2}/?[\w\-.]+/[\w\-./]+"),
]

STRUCTURED_PATTERN = re.compile(
    r"\b(?:overview|summary|summarize|summarise|recap|architecture|flow|design|scope|"
    r"roadmap|earlier|previously|history|so far)\b",
    re.IGNORECASE,
)


def classify_query(query: str) -> QueryMode:
    """Classify a query as precise, structured or broad.

    Precise queries ask for low-level evidence (a file, an exact value, an
    error or a line). Structured queries ask about earlier history as a
    whole. Everything else is broad.
    """
    if any(p.search(query) for p in PRECISE_PATTERNS):
        return "precise"
    if STRUCTURED_PATTERN.search(query):
        return "structured"
    return "broad"


class ContextRetriever:
    """
    Decides how deep into the archives a query needs to go.

    L0 sends only the recent window. L1 adds the best-scoring archive
    summaries that fit the budget. L2 swaps raw chunks in for the top
    summaries when the query asks for exact detail.
    """

    def __init__(self, score_provider: ScoreProvider | None = None):
        self.score_provider = score_provider or LexicalScoreProvider()
        self._lexical = LexicalScoreProvider()

    async def decide(
        self,
        session_key: str,
        query: str,
        archives: list[ArchiveRecord],
        recent_messages: list[dict],
        config: LayeredContextConfig,
        current_turn: dict | None = None,
        history_tokens: int | None = None,
    ) -> RetrievalResult:
        """
        Choose archive content for a query.

        Args:
            session_key: Session the archives belong to (for logging).
            query: The user's current question.
            archives: Archive records, oldest first.
            recent_messages: Raw messages kept verbatim, oldest first.
            config: Layered context configuration.
            current_turn: Message carrying the query. Defaults to a plain
                user message with ``query``.
            history_tokens: Token estimate of the full untouched history.

        Returns:
            RetrievalResult with the decision, selections and token usage.
        """
        thresholds = config.escalation
        turn = current_turn or {"role": "user", "content": query}
        base_tokens = estimate_messages_tokens(recent_messages) + estimate_message_tokens(turn)
        if history_tokens is None:
            history_tokens = base_tokens + sum(estimate_tokens(a.raw_text) for a in archives)

        mode = classify_query(query)
        scores = await self._score(query, archives)
        top = max(scores.values(), default=0.0)
        fits = base_tokens <= config.max_prompt_tokens

        def finish(layer, selections, reason) -> RetrievalResult:
            return self._result(layer, selections, scores, mode, reason, base_tokens, history_tokens)

        if not archives:
            return finish("L0", [], "no_archives")
        if fits and mode == "broad" and top < thresholds.score_threshold_high:
            return finish("L0", [], "recent_window_sufficient")

        # ── L1: greedy by score, recency breaks ties ──
        by_id = {a.id: a for a in archives}
        candidates = sorted(
            (a for a in archives if scores[a.id] > thresholds.min_relevance),
            key=lambda a: (-scores[a.id], -a.chunk_start),
        )
        if not candidates:
            return finish("L0", [], "no_relevant_archives")

        available = config.max_prompt_tokens - base_tokens - context_frame_tokens()
        limit = min(thresholds.max_items_for_l1, config.max_archives)
        selections: list[ArchiveSelection] = []
        used = 0
        for archive in candidates:
            if len(selections) >= limit:
                break
            selection = self._select(archive, "L1", scores[archive.id])
            if used + selection.tokens > available:
                break
            selections.append(selection)
            used += selection.tokens

        if not selections:
            return finish("L0", [], "budget_exhausted")
        if mode != "precise":
            return finish("L1", selections, "summaries_selected")

        # ── L2: raw chunks for the strongest precise matches ──
        raw_candidates = [
            s for s in selections if s.score > thresholds.l2_relevance_threshold
        ][:thresholds.max_items_for_l2]
        if not raw_candidates:
            return finish("L1", selections, "no_precise_match")

        substituted = 0
        for candidate in raw_candidates:
            if candidate not in selections:
                continue  # dropped to make room for a stronger chunk
            raw = self._select(by_id[candidate.archive_id], "L2", candidate.score)
            delta = raw.tokens - candidate.tokens

            droppable = sorted(
                (s for s in selections if s.layer == "L1" and s is not candidate),
                key=lambda s: (s.score, s.chunk_start),
            )
            to_drop = []
            freed = 0
            while used + delta - freed > available and len(to_drop) < len(droppable):
                victim = droppable[len(to_drop)]
                to_drop.append(victim)
                freed += victim.tokens
            if used + delta - freed > available:
                logger.debug(f"Raw chunk {raw.archive_id} does not fit, keeping its summary")
                continue

            for victim in to_drop:
                selections.remove(victim)
            selections[selections.index(candidate)] = raw
            used += delta - freed
            substituted += 1

        if substituted:
            return finish("L2", selections, "raw_chunks_loaded")
        return finish("L1", selections, "raw_chunks_over_budget")

    # ── internal helpers ────────────────────────────────────────

    async def _score(self, query: str, archives: list[ArchiveRecord]) -> dict[str, float]:
        if not archives:
            return {}
        texts = [a.index_text for a in archives]
        try:
            values = await self.score_provider.score_many(query, texts)
            if len(values) != len(texts):
                raise ValueError(f"expected {len(texts)} scores, got {len(values)}")
        except Exception as e:
            logger.warning(f"Archive scoring failed, using lexical scores: {e}")
            values = await self._lexical.score_many(query, texts)
        return {a.id: clamp_score(v) for a, v in zip(archives, values)}

    @staticmethod
    def _select(archive: ArchiveRecord, layer: str, score: float) -> ArchiveSelection:
        content = archive.raw_text if layer == "L2" else archive.summary_text
        section = format_selection(archive.chunk_start, archive.chunk_end, layer, content)
        return ArchiveSelection(
            archive_id=archive.id,
            layer=layer,
            content=content,
            score=score,
            tokens=selection_tokens(section),
            chunk_start=archive.chunk_start,
            chunk_end=archive.chunk_end,
        )

    @staticmethod
    def _result(
        layer: str,
        selections: list[ArchiveSelection],
        scores: dict[str, float],
        mode: QueryMode,
        reason: str,
        base_tokens: int,
        history_tokens: int,
    ) -> RetrievalResult:
        ordered = sorted(selections, key=lambda s: s.chunk_start)
        return build_result(layer, ordered, scores, mode, reason, base_tokens, history_tokens)


def build_result(
    layer: str,
    selections: list[ArchiveSelection],
    scores: dict[str, float],
    mode: QueryMode,
    reason: str,
    base_tokens: int,
    history_tokens: int,
) -> RetrievalResult:
    """Assemble a RetrievalResult; selections are kept in the given order."""
    l1 = sum(s.tokens for s in selections if s.layer == "L1")
    l2 = sum(s.tokens for s in selections if s.layer == "L2")
    frame = context_frame_tokens() if selections else 0
    decision = RetrievalDecision(
        reached_layer=layer,
        selected_archive_ids=[s.archive_id for s in selections],
        scores=scores,
        query_mode=mode,
        reason=reason,
    )
    return RetrievalResult(
        decision=decision,
        selections=selections,
        token_usage=TokenUsage(before=history_tokens, after=base_tokens + frame + l1 + l2),
        layer_tokens={"L0": base_tokens, "L1": l1, "L2": l2},
    )
