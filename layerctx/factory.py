"""Wire a ContextManager from the root configuration."""

from loguru import logger

from layerctx.config.schema import Config
from layerctx.context.indexer import ContextIndexer
from layerctx.context.manager import ContextManager
from layerctx.context.retriever import ContextRetriever
from layerctx.context.scoring import LexicalScoreProvider, ScoreProvider
from layerctx.context.summarizer import SummaryGenerator, SummaryProvider
from layerctx.session.store import SessionStore


def build_summary_provider(config: Config) -> SummaryProvider | None:
    """LLM summary provider, or None for deterministic summaries only."""
    if not config.summary.enabled:
        return None
    from layerctx.providers.litellm_provider import LiteLLMProvider
    from layerctx.providers.summary import LLMSummaryProvider

    model = config.summary.model
    provider = LiteLLMProvider(
        api_key=config.get_api_key(model),
        default_model=model,
        api_base=config.get_api_base(),
    )
    return LLMSummaryProvider(
        provider,
        model=model,
        temperature=config.summary.temperature,
        max_tokens=config.summary.max_tokens,
    )


def build_score_provider(config: Config) -> ScoreProvider:
    if config.scoring.mode == "dense":
        from layerctx.providers.embeddings import LiteLLMEmbeddingScoreProvider

        model = config.scoring.embedding_model
        return LiteLLMEmbeddingScoreProvider(
            model=model,
            api_key=config.get_api_key(model),
            api_base=config.get_api_base(),
            timeout=config.scoring.timeout,
        )
    return LexicalScoreProvider()


def build_manager(config: Config) -> ContextManager:
    """Create a ContextManager with store, summarizer and scorer from ``config``."""
    store = SessionStore(config.storage_path)
    summarizer = SummaryGenerator(build_summary_provider(config))
    retriever = ContextRetriever(build_score_provider(config))
    logger.debug(
        f"Context manager: summaries={'llm' if summarizer.provider else 'fallback'}, "
        f"scoring={config.scoring.mode}, persist={config.storage.persist}"
    )
    return ContextManager(store, ContextIndexer(store, summarizer), retriever)
