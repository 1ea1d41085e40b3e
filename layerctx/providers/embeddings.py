"""Dense relevance scoring with LiteLLM embeddings."""

import hashlib
import math
from collections import OrderedDict
from typing import Any

from litellm import aembedding

from layerctx.context.scoring import ScoreProvider

MAX_CACHED_EMBEDDINGS = 512


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class LiteLLMEmbeddingScoreProvider(ScoreProvider):
    """
    Scores archives by cosine similarity of embeddings.

    Archive embeddings are cached by content hash, so each summary is
    embedded once. Negative similarities score 0. Request failures raise;
    the retriever falls back to lexical scoring.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = 10.0,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout
        self._cache: OrderedDict[str, list[float]] = OrderedDict()

    async def score(self, query: str, text: str) -> float:
        return (await self.score_many(query, [text]))[0]

    async def score_many(self, query: str, texts: list[str]) -> list[float]:
        if not texts:
            return []
        missing = [t for t in dict.fromkeys(texts) if self._key(t) not in self._cache]
        vectors = await self._embed([query] + missing)
        query_vec = vectors[0]
        for text, vec in zip(missing, vectors[1:]):
            self._remember(self._key(text), vec)
        return [
            max(0.0, min(1.0, cosine_similarity(query_vec, self._cache[self._key(t)])))
            for t in texts
        ]

    async def _embed(self, inputs: list[str]) -> list[list[float]]:
        kwargs: dict[str, Any] = {"model": self.model, "input": inputs, "timeout": self.timeout}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await aembedding(**kwargs)
        vectors = [
            item["embedding"] if isinstance(item, dict) else item.embedding
            for item in response.data
        ]
        if len(vectors) != len(inputs):
            raise ValueError(f"expected {len(inputs)} embeddings, got {len(vectors)}")
        return vectors

    def _remember(self, key: str, vector: list[float]) -> None:
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > MAX_CACHED_EMBEDDINGS:
            self._cache.popitem(last=False)

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha1(text.encode("utf-8")).hexdigest()
