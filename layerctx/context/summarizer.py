"""Archive summary generation with a deterministic fallback."""

from abc import ABC, abstractmethod

from loguru import logger

from layerctx.context.text import normalize_whitespace, split_sentences, trim_to_token_target
from layerctx.context.types import SummaryLevel, SummaryResult

EMPTY_SUMMARY = "No historical content was available."
FALLBACK_HEADER = "Archive summary:"
FALLBACK_MAX_LINES = 18
ABSTRACT_SENTENCES = 2


class SummaryProviderError(Exception):
    """Raised by summary providers when a summary cannot be produced."""


class SummaryProvider(ABC):
    """Capability that turns text into a shorter text at a given level."""

    @abstractmethod
    async def summarize(self, text: str, target_tokens: int, level: SummaryLevel) -> str:
        """Return a summary of ``text`` close to ``target_tokens`` tokens."""
        pass


def fallback_summary(text: str, target_tokens: int) -> str:
    """Bullet the first non-empty lines of ``text`` under a fixed header."""
    normalized = normalize_whitespace(text)
    if not normalized:
        return EMPTY_SUMMARY
    lines = [line.strip() for line in normalized.split("\n") if line.strip()]
    bullets = "\n".join(f"- {line}" for line in lines[:FALLBACK_MAX_LINES])
    return trim_to_token_target(f"{FALLBACK_HEADER}\n{bullets}", target_tokens)


def fallback_abstract(text: str, target_tokens: int) -> str:
    """First two sentences of ``text``, trimmed to target."""
    normalized = normalize_whitespace(text)
    if not normalized:
        return EMPTY_SUMMARY
    sentences = split_sentences(normalized)
    lead = " ".join(sentences[:ABSTRACT_SENTENCES]) if sentences else normalized
    return trim_to_token_target(lead, target_tokens)


class SummaryGenerator:
    """
    Produces archive summaries and abstracts.

    With a provider, its output is trimmed to the target. Any provider
    failure or empty output falls back to a deterministic reduction and is
    reported through ``fallback_used``/``fallback_reason``. Never raises.
    """

    def __init__(self, provider: SummaryProvider | None = None):
        self.provider = provider

    async def generate_summary(self, text: str, target_tokens: int) -> SummaryResult:
        return await self._generate(text, target_tokens, "summary")

    async def generate_abstract(self, summary_text: str, target_tokens: int) -> SummaryResult:
        return await self._generate(summary_text, target_tokens, "abstract")

    async def _generate(self, text: str, target_tokens: int, level: SummaryLevel) -> SummaryResult:
        fallback = fallback_summary if level == "summary" else fallback_abstract

        if self.provider is None or not normalize_whitespace(text):
            return SummaryResult(text=fallback(text, target_tokens))

        try:
            raw = await self.provider.summarize(text, target_tokens, level)
        except Exception as e:
            logger.warning(f"Archive {level} generation failed, using fallback: {e}")
            return SummaryResult(
                text=fallback(text, target_tokens),
                fallback_used=True,
                fallback_reason=f"{level}_llm_failed:{e}",
            )

        trimmed = trim_to_token_target(raw if isinstance(raw, str) else "", target_tokens)
        if not trimmed:
            logger.warning(f"Archive {level} generation returned empty output, using fallback")
            return SummaryResult(
                text=fallback(text, target_tokens),
                fallback_used=True,
                fallback_reason=f"{level}_llm_empty",
            )
        return SummaryResult(text=trimmed)
