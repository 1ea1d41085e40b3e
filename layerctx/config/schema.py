"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EscalationThresholds(BaseModel):
    """Score thresholds that drive L0 -> L1 -> L2 escalation."""
    model_config = ConfigDict(frozen=True)

    score_threshold_high: float = Field(default=0.64, ge=0, le=1)  # confident archive match
    l2_relevance_threshold: float = Field(default=0.25, ge=0, le=1)  # raw chunk worth loading
    min_relevance: float = Field(default=0.05, ge=0, le=1)  # candidate cut-off for L1
    max_items_for_l1: int = Field(default=4, ge=1)
    max_items_for_l2: int = Field(default=2, ge=0)


class LayeredContextConfig(BaseModel):
    """Per-call layered context configuration."""
    model_config = ConfigDict(frozen=True, revalidate_instances="always")

    enable_session_compression: bool = True
    max_prompt_tokens: int = Field(default=32000, gt=0)
    max_recent_messages: int = Field(default=24, ge=1)
    max_archives: int = Field(default=12, ge=1)
    archive_chunk_size: int = Field(default=8, ge=1)
    l0_target_tokens: int = Field(default=120, gt=0)  # abstract length
    l1_target_tokens: int = Field(default=1200, gt=0)  # summary length
    escalation: EscalationThresholds = Field(default_factory=EscalationThresholds)

    @model_validator(mode="after")
    def _check_targets(self) -> "LayeredContextConfig":
        if self.l0_target_tokens > self.l1_target_tokens:
            raise ValueError("l0_target_tokens must not exceed l1_target_tokens")
        return self


class SummaryConfig(BaseModel):
    """LLM summarization settings."""
    enabled: bool = False  # deterministic fallback only when disabled
    model: str = "anthropic/claude-haiku-4-5"
    temperature: float = 0.3
    max_tokens: int = 2048


class ScoringConfig(BaseModel):
    """Archive relevance scoring settings."""
    mode: Literal["lexical", "dense"] = "lexical"
    embedding_model: str = "text-embedding-3-small"
    timeout: float = 10.0  # seconds per embedding request


class StorageConfig(BaseModel):
    """Session archive persistence."""
    persist: bool = False
    path: str = "~/.layerctx/sessions"


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)


class Config(BaseSettings):
    """Root configuration for layerctx."""
    model_config = SettingsConfigDict(env_prefix="LAYERCTX_", env_nested_delimiter="__")

    context: LayeredContextConfig = Field(default_factory=LayeredContextConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    @property
    def storage_path(self) -> Path | None:
        """Expanded session directory, or None when persistence is off."""
        if not self.storage.persist:
            return None
        return Path(self.storage.path).expanduser()

    def get_api_key(self, model: str | None = None) -> str | None:
        """API key for the provider named in ``model``, else first configured."""
        if model and "/" in model:
            provider = getattr(self.providers, model.split("/")[0], None)
            if provider and provider.api_key:
                return provider.api_key
        return (
            self.providers.anthropic.api_key or
            self.providers.openai.api_key or
            self.providers.gemini.api_key or
            None
        )

    def get_api_base(self) -> str | None:
        """Get API base URL if a provider has a custom base configured."""
        for provider in [self.providers.anthropic, self.providers.openai, self.providers.gemini]:
            if provider.api_base:
                return provider.api_base
        return None
