"""Tests for tiered archive retrieval."""

import pytest

from layerctx.config.schema import EscalationThresholds, LayeredContextConfig
from layerctx.context.messages import context_frame_tokens, format_selection, selection_tokens
from layerctx.context.retriever import ContextRetriever, classify_query
from layerctx.context.scoring import ScoreProvider
from layerctx.context.tokens import estimate_message_tokens
from layerctx.context.types import ArchiveRecord

KEY = "telegram:1"


def _archive(
    start: int,
    summary: str,
    raw: str | None = None,
    size: int = 8,
    abstract: str | None = None,
    keywords: tuple[str, ...] = (),
) -> ArchiveRecord:
    return ArchiveRecord(
        id=f"archive_{start:05d}",
        chunk_start=start,
        chunk_end=start + size,
        raw_text=raw or f"USER: {summary}",
        summary_text=summary,
        abstract_text=summary if abstract is None else abstract,
        keywords=list(keywords),
        checksum=f"c{start}",
    )


def _section_tokens(archive: ArchiveRecord, layer: str) -> int:
    content = archive.raw_text if layer == "L2" else archive.summary_text
    return selection_tokens(format_selection(archive.chunk_start, archive.chunk_end, layer, content))


def _query_tokens(query: str) -> int:
    return estimate_message_tokens({"role": "user", "content": query})


RECENT = [
    {"role": "user", "content": "How is the backup drill going?"},
    {"role": "assistant", "content": "Restore drill passed on staging."},
]


class FailingScorer(ScoreProvider):
    async def score(self, query: str, text: str) -> float:
        raise TimeoutError("embedding service timed out")


class TestClassifyQuery:
    @pytest.mark.parametrize("query", [
        "what is the exact error line in deploy.ts during rollout",
        "show me src/app/main.py",
        "what did `retry_invoice()` return",
        "which status code came back",
        "paste the traceback",
    ])
    def test_precise(self, query):
        assert classify_query(query) == "precise"

    @pytest.mark.parametrize("query", [
        "billing migration overview and architecture flow",
        "recap what we discussed earlier",
    ])
    def test_structured(self, query):
        assert classify_query(query) == "structured"

    @pytest.mark.parametrize("query", [
        "deployment release checklist rollback status",
        "thanks, sounds good",
    ])
    def test_broad(self, query):
        assert classify_query(query) == "broad"


class TestLayerZero:
    @pytest.mark.asyncio
    async def test_no_archives(self):
        result = await ContextRetriever().decide(KEY, "anything", [], RECENT, LayeredContextConfig())
        assert result.decision.reached_layer == "L0"
        assert result.decision.reason == "no_archives"
        assert result.selections == []

    @pytest.mark.asyncio
    async def test_generic_query_stays_on_recent_window(self):
        archives = [_archive(0, "Billing migration: invoice retry policy.")]
        result = await ContextRetriever().decide(
            KEY, "thanks, sounds good", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.reached_layer == "L0"
        assert result.decision.reason == "recent_window_sufficient"
        assert result.decision.selected_archive_ids == []


class TestLayerOne:
    @pytest.mark.asyncio
    async def test_confident_match_escalates(self):
        archives = [
            _archive(0, "Deployment checklist: rollout gates, rollback command, canary status."),
            _archive(8, "Billing migration: invoice retry policy."),
        ]
        result = await ContextRetriever().decide(
            KEY, "deployment rollback status", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.reached_layer == "L1"
        assert result.decision.selected_archive_ids == ["archive_00000"]
        assert result.decision.scores["archive_00008"] == 0.0
        assert result.selections[0].content == archives[0].summary_text

    @pytest.mark.asyncio
    async def test_structured_query_escalates(self):
        archives = [_archive(0, "Billing migration: invoice retry policy.")]
        result = await ContextRetriever().decide(
            KEY, "billing overview", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.reached_layer == "L1"
        assert result.decision.query_mode == "structured"

    @pytest.mark.asyncio
    async def test_irrelevant_archives_not_selected(self):
        archives = [_archive(0, "Infra backup windows.")]
        result = await ContextRetriever().decide(
            KEY, "billing overview", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.reached_layer == "L0"
        assert result.decision.reason == "no_relevant_archives"

    @pytest.mark.asyncio
    async def test_item_limit(self):
        archives = [_archive(i * 8, f"billing invoice note {i}") for i in range(6)]
        config = LayeredContextConfig(escalation=EscalationThresholds(max_items_for_l1=3))
        result = await ContextRetriever().decide(KEY, "billing invoice", archives, RECENT, config)
        assert len(result.selections) == 3

    @pytest.mark.asyncio
    async def test_equal_scores_prefer_recent(self):
        archives = [_archive(0, "billing invoice retry"), _archive(8, "billing invoice retry")]
        config = LayeredContextConfig(escalation=EscalationThresholds(max_items_for_l1=1))
        result = await ContextRetriever().decide(KEY, "billing invoice", archives, RECENT, config)
        assert result.decision.selected_archive_ids == ["archive_00008"]

    @pytest.mark.asyncio
    async def test_selections_respect_budget(self):
        archives = [
            _archive(0, "billing invoice " + "detail " * 40),
            _archive(8, "billing invoice " + "detail " * 40),
        ]
        query = "billing invoice"
        base = estimate_message_tokens(RECENT[0]) + estimate_message_tokens(RECENT[1]) + _query_tokens(query)
        budget = base + context_frame_tokens() + _section_tokens(archives[1], "L1")
        config = LayeredContextConfig(max_prompt_tokens=budget)

        result = await ContextRetriever().decide(KEY, query, archives, RECENT, config)

        assert result.decision.selected_archive_ids == ["archive_00008"]
        assert result.token_usage.after <= budget

    @pytest.mark.asyncio
    async def test_scorer_failure_falls_back_to_lexical(self):
        archives = [_archive(0, "Deployment checklist: rollback command, canary status.")]
        result = await ContextRetriever(FailingScorer()).decide(
            KEY, "deployment rollback status", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.reached_layer == "L1"
        assert result.decision.scores["archive_00000"] == 1.0


class TestIndexText:
    @pytest.mark.asyncio
    async def test_abstract_counts_toward_score(self):
        archives = [
            _archive(0, "Earlier notes.", abstract="Billing migration: invoice retry policy."),
            _archive(8, "Earlier notes."),
        ]
        result = await ContextRetriever().decide(
            KEY, "billing retry", archives, RECENT, LayeredContextConfig()
        )

        assert result.decision.scores == {"archive_00000": 1.0, "archive_00008": 0.0}
        assert result.decision.selected_archive_ids == ["archive_00000"]
        # the summary, not the abstract, goes into the prompt
        assert result.selections[0].content == "Earlier notes."

    @pytest.mark.asyncio
    async def test_keywords_count_toward_score(self):
        archives = [_archive(0, "Earlier notes.", keywords=("invoice", "reconciliation"))]
        result = await ContextRetriever().decide(
            KEY, "invoice reconciliation", archives, RECENT, LayeredContextConfig()
        )
        assert result.decision.scores["archive_00000"] == 1.0
        assert result.decision.reached_layer == "L1"

    def test_index_text_skips_duplicate_abstract(self):
        archive = _archive(0, "Deploy notes.", keywords=("deploy",))
        assert archive.index_text == "Deploy notes.\ndeploy"


class TestLayerTwo:
    QUERY = "exact error line in deploy.ts"

    def _archives(self):
        target = _archive(
            0,
            "Fixed the exact error line in deploy.ts",
            raw="ASSISTANT: TypeError at deploy.ts line 42: " + "stack frame " * 60,
        )
        other = _archive(8, "Reviewed deploy.ts rollout")
        return target, other

    @pytest.mark.asyncio
    async def test_precise_query_loads_raw_chunk(self):
        target, other = self._archives()
        result = await ContextRetriever().decide(
            KEY, self.QUERY, [target, other], [], LayeredContextConfig()
        )

        assert result.decision.reached_layer == "L2"
        assert result.decision.query_mode == "precise"
        raw = [s for s in result.selections if s.layer == "L2"]
        assert [s.archive_id for s in raw] == [target.id]
        assert raw[0].content == target.raw_text
        # the weaker archive stays as a summary
        assert any(s.archive_id == other.id and s.layer == "L1" for s in result.selections)

    @pytest.mark.asyncio
    async def test_drops_weakest_summary_to_make_room(self):
        target, other = self._archives()
        margin = _section_tokens(other, "L1") - 1
        budget = _query_tokens(self.QUERY) + context_frame_tokens() + _section_tokens(target, "L2") + margin
        config = LayeredContextConfig(max_prompt_tokens=budget)

        result = await ContextRetriever().decide(KEY, self.QUERY, [target, other], [], config)

        assert result.decision.reached_layer == "L2"
        assert result.decision.selected_archive_ids == [target.id]
        assert result.token_usage.after <= budget

    @pytest.mark.asyncio
    async def test_keeps_summary_when_raw_cannot_fit(self):
        target, other = self._archives()
        budget = _query_tokens(self.QUERY) + context_frame_tokens() + _section_tokens(target, "L1")
        config = LayeredContextConfig(max_prompt_tokens=budget)

        result = await ContextRetriever().decide(KEY, self.QUERY, [target, other], [], config)

        assert result.decision.reached_layer == "L1"
        assert result.decision.reason == "raw_chunks_over_budget"
        assert [s.layer for s in result.selections] == ["L1"]
        assert result.token_usage.after <= budget

    @pytest.mark.asyncio
    async def test_weak_match_does_not_escalate(self):
        weak = _archive(0, "Reviewed deploy.ts rollout")
        result = await ContextRetriever().decide(KEY, self.QUERY, [weak], [], LayeredContextConfig())
        assert result.decision.reached_layer == "L1"
        assert result.decision.reason == "no_precise_match"


class TestTokenUsage:
    @pytest.mark.asyncio
    async def test_usage_against_history(self):
        archives = [_archive(0, "Deployment checklist: rollback command, canary status.")]
        result = await ContextRetriever().decide(
            KEY, "deployment rollback status", archives, RECENT, LayeredContextConfig(),
            history_tokens=5000,
        )
        usage = result.token_usage
        layers = result.layer_tokens
        assert usage.before == 5000
        assert usage.after == layers["L0"] + layers["L1"] + layers["L2"] + context_frame_tokens()
        assert usage.savings == usage.before - usage.after
        assert usage.savings_ratio == pytest.approx(usage.savings / 5000)
