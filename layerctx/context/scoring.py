"""Relevance scoring between a query and archive text."""

from abc import ABC, abstractmethod

from layerctx.context.text import estimate_similarity


class ScoreProvider(ABC):
    """Scores how relevant a text is to a query, in [0, 1]."""

    @abstractmethod
    async def score(self, query: str, text: str) -> float:
        pass

    async def score_many(self, query: str, texts: list[str]) -> list[float]:
        """Score several texts; providers with batch APIs override this."""
        return [await self.score(query, text) for text in texts]


class LexicalScoreProvider(ScoreProvider):
    """Keyword-overlap scoring with a phrase-match bonus. No I/O."""

    async def score(self, query: str, text: str) -> float:
        return estimate_similarity(query, text)


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
