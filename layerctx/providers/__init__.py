"""LLM provider abstraction module."""

from layerctx.providers.base import LLMProvider, LLMResponse

__all__ = ["LLMProvider", "LLMResponse"]
