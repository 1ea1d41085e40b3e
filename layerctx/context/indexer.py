"""Archive indexing of aged-out conversation history."""

import hashlib

from loguru import logger

from layerctx.config.schema import LayeredContextConfig
from layerctx.context.messages import render_transcript
from layerctx.context.summarizer import SummaryGenerator
from layerctx.context.text import extract_keywords
from layerctx.context.types import ArchiveRecord, IndexSyncResult, SessionContext
from layerctx.session.store import SessionStore


def transcript_checksum(transcript: str) -> str:
    return hashlib.sha1(transcript.encode("utf-8")).hexdigest()


class ContextIndexer:
    """
    Turns messages that fell out of the recent window into ArchiveRecords.

    Only complete chunks of ``archive_chunk_size`` messages are archived,
    oldest first, starting at the session's ``archived_until`` boundary.
    A trailing partial chunk stays raw until it fills up.
    """

    def __init__(self, store: SessionStore, summarizer: SummaryGenerator):
        self.store = store
        self.summarizer = summarizer

    async def sync(
        self,
        session_key: str,
        history: list[dict],
        config: LayeredContextConfig,
        platform: str = "",
        chat_id: str = "",
    ) -> IndexSyncResult:
        """Archive newly aged-out chunks and evict beyond ``max_archives``."""
        result = IndexSyncResult()
        ctx = self.store.get_or_create(session_key, platform, chat_id)

        if self._diverged(ctx, history):
            logger.info(
                f"History of {session_key} no longer matches its archives "
                f"({len(ctx.archives)} archives, boundary {ctx.archived_until}); re-indexing"
            )
            ctx = self.store.reset(session_key)
            result.reset = True

        size = config.archive_chunk_size
        archivable_end = len(history) - config.max_recent_messages

        while ctx.archived_until + size <= archivable_end:
            start = ctx.archived_until
            record, reasons = await self._build_record(history, start, start + size, config)
            ctx.archives.append(record)
            ctx.archived_until = record.chunk_end
            ctx.touch()
            result.created.append(record)
            result.fallback_events.extend(reasons)

        result.evicted = self.store.prune(session_key, config.max_archives)

        if result.created:
            logger.info(
                f"Archived {len(result.created) * size} messages of {session_key} "
                f"into {len(result.created)} chunk(s), "
                f"{len(ctx.archives)} archive(s) held"
            )
        if result.changed:
            self.store.save(ctx)
        return result

    async def _build_record(
        self, history: list[dict], start: int, end: int, config: LayeredContextConfig
    ) -> tuple[ArchiveRecord, list[str]]:
        transcript = render_transcript(history[start:end])
        checksum = transcript_checksum(transcript)

        summary = await self.summarizer.generate_summary(transcript, config.l1_target_tokens)
        abstract = await self.summarizer.generate_abstract(summary.text, config.l0_target_tokens)

        reasons = [r for r in (summary.fallback_reason, abstract.fallback_reason) if r]
        record = ArchiveRecord(
            id=f"archive_{start:05d}_{checksum[:10]}",
            chunk_start=start,
            chunk_end=end,
            raw_text=transcript,
            summary_text=summary.text,
            abstract_text=abstract.text,
            keywords=extract_keywords(f"{abstract.text}\n{summary.text}"),
            summary_fallback_used=summary.fallback_used or abstract.fallback_used,
            checksum=checksum,
        )
        return record, reasons

    @staticmethod
    def _diverged(ctx: SessionContext, history: list[dict]) -> bool:
        """True when stored archives no longer describe ``history``."""
        if len(history) < ctx.archived_until:
            return True
        if not ctx.archives:
            return False
        last = ctx.archives[-1]
        transcript = render_transcript(history[last.chunk_start:last.chunk_end])
        return transcript_checksum(transcript) != last.checksum
