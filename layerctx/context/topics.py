"""Temporary-topic transitions: detect when a query leaves the main thread."""

import json
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from layerctx.context.messages import content_to_text
from layerctx.context.scoring import clamp_score
from layerctx.context.text import estimate_similarity, normalize_whitespace
from layerctx.providers.base import LLMProvider

TopicMode = Literal["main", "temp"]
TopicDecision = Literal["stay-main", "enter-temp", "stay-temp", "replace-temp", "exit-temp"]

REFERENCE_MAX_MESSAGES = 8
REFERENCE_MAX_CHARS_PER_MESSAGE = 120
REFERENCE_MAX_TOTAL_CHARS = 600


class TopicThresholds(BaseModel):
    """Relevance thresholds for entering and leaving a temporary topic."""
    model_config = ConfigDict(frozen=True)

    enter_threshold: float = Field(default=0.55, ge=0, le=1)
    exit_threshold: float = Field(default=0.55, ge=0, le=1)
    temp_stay_threshold: float = Field(default=0.8, ge=0, le=1)


@dataclass
class TopicScores:
    rel_main: float
    rel_temp: float


@dataclass
class TopicTransition:
    decision: TopicDecision
    rel_main: float
    rel_temp: float


class TopicScorer(ABC):
    """Rates a query's relevance to the main and temporary topics."""

    @abstractmethod
    async def score(self, query: str, main_reference: str, temp_reference: str) -> TopicScores:
        pass


class LexicalTopicScorer(TopicScorer):
    """Keyword-overlap topic scoring. No I/O."""

    async def score(self, query: str, main_reference: str, temp_reference: str) -> TopicScores:
        return TopicScores(
            rel_main=estimate_similarity(query, main_reference) if main_reference else 0.0,
            rel_temp=estimate_similarity(query, temp_reference) if temp_reference else 0.0,
        )


SCORER_SYSTEM_PROMPT = (
    "Rate query relevance to each topic (0.0=unrelated, 1.0=same topic). "
    "If a topic is absent, its score is 0. "
    'Reply with ONLY: {"relMain":<n>,"relTemp":<n>}'
)


def _build_scoring_prompt(query: str, main_reference: str, temp_reference: str) -> str:
    prompt = f"Main topic: {main_reference or '(none)'}"
    if temp_reference:
        prompt += f"\nTemp topic: {temp_reference}"
    return prompt + f"\nQuery: {query}"


def parse_relevance_scores(text: str) -> TopicScores:
    """Extract ``{"relMain":..,"relTemp":..}`` from a model reply; zeros if absent."""
    match = re.search(r"\{[^}]*\}", text or "")
    if not match:
        return TopicScores(0.0, 0.0)
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return TopicScores(0.0, 0.0)

    def pick(key: str) -> float:
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0.0
        return clamp_score(value) if math.isfinite(value) else 0.0

    return TopicScores(rel_main=pick("relMain"), rel_temp=pick("relTemp"))


class LLMTopicScorer(TopicScorer):
    """
    Asks a chat model for topic relevance scores.

    On any provider failure both scores are 1.0, which keeps the caller in
    its current topic.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None, max_tokens: int = 256):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens

    async def score(self, query: str, main_reference: str, temp_reference: str) -> TopicScores:
        if not query or not (main_reference or temp_reference):
            return TopicScores(0.0, 0.0)
        try:
            response = await self.provider.chat(
                messages=[
                    {"role": "system", "content": SCORER_SYSTEM_PROMPT},
                    {"role": "user", "content": _build_scoring_prompt(query, main_reference, temp_reference)},
                ],
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.0,
            )
            if response.finish_reason == "error":
                raise RuntimeError(response.content)
        except Exception as e:
            logger.warning(f"Topic scoring failed: {e}")
            return TopicScores(1.0, 1.0)
        return parse_relevance_scores(response.content or "")


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}..."


def build_topic_reference(messages: list[dict], max_messages: int = REFERENCE_MAX_MESSAGES) -> str:
    """Short text fingerprint of the last few messages of a topic."""
    if not messages:
        return ""
    lines = []
    for msg in messages[-max_messages:]:
        content = msg.get("content")
        if isinstance(content, list):
            content = [b for b in content if isinstance(b, dict) and b.get("type") == "text"]
        text = normalize_whitespace(content_to_text(content))
        if text:
            lines.append(_clip(text, REFERENCE_MAX_CHARS_PER_MESSAGE))
    return _clip(normalize_whitespace("; ".join(lines)), REFERENCE_MAX_TOTAL_CHARS)


async def decide_topic_transition(
    mode: TopicMode,
    query: str,
    main_reference: str,
    scorer: TopicScorer,
    temp_reference: str = "",
    thresholds: TopicThresholds | None = None,
) -> TopicTransition:
    """
    Decide whether a query stays on, enters, replaces or exits a temporary topic.

    In main mode a query that is not relevant enough to the main topic
    enters a temporary one. In temp mode a query clearly back on the main
    topic exits, one unrelated to both replaces the temporary topic, and
    anything else stays.
    """
    thresholds = thresholds or TopicThresholds()
    query = normalize_whitespace(query)
    main_reference = normalize_whitespace(main_reference)
    temp_reference = normalize_whitespace(temp_reference)

    scores = await scorer.score(query, main_reference, temp_reference)
    rel_main, rel_temp = scores.rel_main, scores.rel_temp

    if mode == "main":
        if not query or not main_reference:
            return TopicTransition("stay-main", rel_main, 0.0)
        if rel_main < thresholds.enter_threshold:
            return TopicTransition("enter-temp", rel_main, 0.0)
        return TopicTransition("stay-main", rel_main, 0.0)

    if not query:
        return TopicTransition("stay-temp", rel_main, rel_temp)
    if (
        main_reference
        and rel_main > thresholds.exit_threshold
        and rel_temp < thresholds.temp_stay_threshold
    ):
        return TopicTransition("exit-temp", rel_main, rel_temp)
    if rel_main < thresholds.enter_threshold and rel_temp < thresholds.temp_stay_threshold:
        return TopicTransition("replace-temp", rel_main, rel_temp)
    return TopicTransition("stay-temp", rel_main, rel_temp)
