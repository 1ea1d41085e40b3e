"""Chat-model backed summary provider."""

from layerctx.context.summarizer import SummaryProvider, SummaryProviderError
from layerctx.context.types import SummaryLevel
from layerctx.prompts.summary import PROMPTS
from layerctx.providers.base import LLMProvider


class LLMSummaryProvider(SummaryProvider):
    """Summarizes archive text with a single chat completion per call."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def summarize(self, text: str, target_tokens: int, level: SummaryLevel) -> str:
        messages = [
            {"role": "system", "content": PROMPTS[level].format(target_tokens=target_tokens)},
            {"role": "user", "content": text},
        ]
        response = await self.provider.chat(
            messages=messages,
            model=self.model,
            max_tokens=self.max_tokens or max(256, target_tokens * 2),
            temperature=self.temperature,
        )
        if response.is_error:
            raise SummaryProviderError(response.content or "provider returned an error")
        return response.content or ""
