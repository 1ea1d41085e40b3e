"""Layered context manager: index, retrieve and assemble the prompt."""

import asyncio
import weakref

from loguru import logger

from layerctx.config.schema import LayeredContextConfig
from layerctx.context.indexer import ContextIndexer
from layerctx.context.messages import (
    build_context_message,
    content_to_text,
    format_selection,
    latest_user_query,
)
from layerctx.context.metrics import ContextMetrics
from layerctx.context.retriever import ContextRetriever, build_result
from layerctx.context.summarizer import SummaryGenerator
from layerctx.context.text import normalize_whitespace
from layerctx.context.tokens import estimate_message_tokens, estimate_messages_tokens
from layerctx.context.types import (
    ArchiveSelection,
    ContextApplication,
    RetrievalDecision,
    RetrievalResult,
    TokenUsage,
)
from layerctx.session.store import SessionStore


class ContextManager:
    """
    Façade over indexing and retrieval for one agent process.

    ``apply`` is serialized per session key; different sessions run
    independently and share no mutable state.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        indexer: ContextIndexer | None = None,
        retriever: ContextRetriever | None = None,
    ):
        self.store = store or SessionStore()
        self.indexer = indexer or ContextIndexer(self.store, SummaryGenerator())
        self.retriever = retriever or ContextRetriever()
        self.metrics = ContextMetrics()
        # entries vanish once no apply holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ── public API ──────────────────────────────────────────────

    async def apply(
        self,
        session_key: str,
        platform: str,
        chat_id: str | None,
        query: str,
        messages: list[dict],
        config: LayeredContextConfig | dict | None = None,
    ) -> ContextApplication:
        """
        Compact ``messages`` for the next model call.

        Args:
            session_key: Routing key of the conversation.
            platform: Originating platform, stored on first use.
            chat_id: Chat identifier, stored on first use.
            query: The user's current question. May be empty, in which
                case the trailing message is taken as the current turn.
            messages: Full conversation, oldest first. Never mutated.
            config: Layered context configuration (model or dict).

        Returns:
            ContextApplication. ``updated_messages`` is the original list
            when compaction would not make the prompt smaller.

        Raises:
            pydantic.ValidationError: If ``config`` is malformed.
        """
        config = LayeredContextConfig.model_validate(
            config if config is not None else LayeredContextConfig()
        )
        messages = list(messages)
        original_tokens = estimate_messages_tokens(messages)

        if not config.enable_session_compression or not messages:
            reason = "compression_disabled" if not config.enable_session_compression else "empty_history"
            return self._passthrough(messages, original_tokens, reason)

        history, current, query_text = self._split_current_turn(messages, query)
        full_tokens = estimate_messages_tokens(history) + estimate_message_tokens(current)

        async with self._lock_for(session_key):
            sync = await self.indexer.sync(
                session_key, history, config, platform=platform, chat_id=chat_id or ""
            )
            ctx = self.store.get_or_create(session_key, platform, chat_id or "")
            recent = history[ctx.archived_until:]
            retrieval = await self.retriever.decide(
                session_key,
                query_text,
                list(ctx.archives),
                recent,
                config,
                current_turn=current,
                history_tokens=full_tokens,
            )
            archived_count = ctx.archived_until

        updated, retrieval, truncated = self._assemble(retrieval, recent, current, config)
        prompt_after = estimate_messages_tokens(updated)

        applied = prompt_after < full_tokens
        if applied:
            prompt_usage = TokenUsage(before=full_tokens, after=prompt_after)
        else:
            updated = messages
            prompt_usage = TokenUsage(before=original_tokens, after=original_tokens)

        self.metrics.record(
            applied=applied,
            layer=retrieval.decision.reached_layer,
            before=prompt_usage.before,
            after=prompt_usage.after,
            fallback_events=len(sync.fallback_events),
            truncated=truncated,
        )

        if applied:
            logger.info(
                f"Context compacted for {session_key}: "
                f"{retrieval.decision.reached_layer} ({retrieval.decision.query_mode}), "
                f"{prompt_usage.before} -> {prompt_usage.after} tokens "
                f"({prompt_usage.savings_ratio:.0%} saved), "
                f"{len(retrieval.selections)} archive(s) used"
            )
        else:
            logger.debug(f"Context left unchanged for {session_key}: nothing to compact")
        if truncated:
            logger.warning(
                f"Recent window of {session_key} truncated by {truncated} message(s) "
                f"to fit {config.max_prompt_tokens} tokens"
            )

        return ContextApplication(
            applied=applied,
            updated_messages=updated,
            retrieval=retrieval,
            prompt_usage=prompt_usage,
            fallback_events=list(sync.fallback_events),
            archived_message_count=archived_count,
            truncated_messages=truncated,
        )

    def get_metrics_snapshot(self) -> dict:
        """Return accumulated compaction metrics."""
        return self.metrics.snapshot()

    async def clear_session(self, session_key: str) -> bool:
        """Forget all archives of a session once in-flight calls finish."""
        async with self._lock_for(session_key):
            return self.store.clear(session_key)

    def close(self) -> None:
        """Flush and release the session store."""
        self.store.close()
        self._locks.clear()

    # ── internal helpers ────────────────────────────────────────

    def _lock_for(self, session_key: str) -> asyncio.Lock:
        lock = self._locks.get(session_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_key] = lock
        return lock

    @staticmethod
    def _split_current_turn(messages: list[dict], query: str) -> tuple[list[dict], dict, str]:
        """Return (history, current_turn, query_text).

        A trailing user message that carries the query is the current turn.
        With an empty query the trailing message is. Otherwise the query is
        appended as a new user message.
        """
        query_text = normalize_whitespace(query or "")
        last = messages[-1]

        if not query_text:
            if last.get("role") == "user":
                query_text = normalize_whitespace(content_to_text(last.get("content")))
            else:
                query_text = latest_user_query(messages)
            return messages[:-1], last, query_text

        if last.get("role") == "user":
            last_text = normalize_whitespace(content_to_text(last.get("content")))
            if query_text in last_text:
                return messages[:-1], last, query_text

        return messages, {"role": "user", "content": query_text}, query_text

    @staticmethod
    def _render(selections: list[ArchiveSelection], recent: list[dict], current: dict) -> list[dict]:
        head = []
        if selections:
            sections = [
                format_selection(s.chunk_start, s.chunk_end, s.layer, s.content)
                for s in selections
            ]
            # opposite role of whatever follows, so turns keep alternating
            following = recent[0] if recent else current
            role = "user" if following.get("role") == "assistant" else "assistant"
            head = [build_context_message(sections, role)]
        return head + recent + [current]

    def _assemble(
        self,
        retrieval: RetrievalResult,
        recent: list[dict],
        current: dict,
        config: LayeredContextConfig,
    ) -> tuple[list[dict], RetrievalResult, int]:
        """Build the prompt and force it under ``max_prompt_tokens``.

        Lowest-scoring archives go first, then the oldest recent messages.
        A window never starts on an orphaned tool result.
        """
        budget = config.max_prompt_tokens
        selections = list(retrieval.selections)
        window = list(recent)
        updated = self._render(selections, window, current)
        dropped = 0
        truncated = 0

        while estimate_messages_tokens(updated) > budget and selections:
            weakest = min(selections, key=lambda s: (s.score, s.chunk_start))
            selections.remove(weakest)
            dropped += 1
            updated = self._render(selections, window, current)

        while estimate_messages_tokens(updated) > budget and window:
            window.pop(0)
            truncated += 1
            while window and window[0].get("role") == "tool":
                window.pop(0)
                truncated += 1
            updated = self._render(selections, window, current)

        if dropped or truncated:
            retrieval = self._rebuild_retrieval(retrieval, selections, window, current)
        return updated, retrieval, truncated

    @staticmethod
    def _rebuild_retrieval(
        retrieval: RetrievalResult,
        selections: list[ArchiveSelection],
        window: list[dict],
        current: dict,
    ) -> RetrievalResult:
        decision = retrieval.decision
        if any(s.layer == "L2" for s in selections):
            layer = "L2"
        elif selections:
            layer = "L1"
        else:
            layer = "L0"
        base_tokens = estimate_messages_tokens(window) + estimate_message_tokens(current)
        return build_result(
            layer,
            selections,
            decision.scores,
            decision.query_mode,
            f"{decision.reason}+budget_trimmed",
            base_tokens,
            retrieval.token_usage.before,
        )

    @staticmethod
    def _passthrough(messages: list[dict], tokens: int, reason: str) -> ContextApplication:
        usage = TokenUsage(before=tokens, after=tokens)
        retrieval = RetrievalResult(
            decision=RetrievalDecision(reached_layer="L0", reason=reason),
            token_usage=TokenUsage(before=tokens, after=tokens),
            layer_tokens={"L0": tokens, "L1": 0, "L2": 0},
        )
        return ContextApplication(
            applied=False,
            updated_messages=messages,
            retrieval=retrieval,
            prompt_usage=usage,
        )
