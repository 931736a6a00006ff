"""Pydantic models for ember's configuration.

Every model is frozen: a loaded config is shared by the CLI, the runtime
factory and the memory service, and none of them may change it.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from ember.config.paths import get_database_path, get_history_database_path

DEFAULT_CHAT_MODEL = "gpt-4o-mini"

PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ModelConfig(_FrozenModel):
    """A chat model the extractor or decider can use, addressed by alias.

    Memory operations pass their own temperatures (see MemoryConfig), so
    ``temperature`` only matters to other callers.
    """

    provider: Literal["anthropic", "openai"]
    model: str
    temperature: float | None = None
    max_tokens: int = 1024


class ProviderConfig(_FrozenModel):
    """Credentials and endpoint for one vendor."""

    api_key: SecretStr | None = None
    base_url: str | None = None


class EmbeddingsConfig(_FrozenModel):
    """Embedding model. Anthropic has no embeddings API, so OpenAI only."""

    provider: Literal["openai"] = "openai"
    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, gt=0)


class MemoryConfig(_FrozenModel):
    """Configuration for the memory pipeline."""

    enabled: bool = False
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    retrieval_limit: int = Field(default=5, gt=0)
    extraction_enabled: bool = True
    max_messages: int = Field(default=20, gt=0)
    min_message_length: int = Field(default=10, ge=0)
    extraction_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    decision_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    chars_per_token: int = Field(default=4, gt=0)
    # Concurrent adds for one owner race by default; exact duplicates are
    # still caught by the content hash check.
    serialize_owner_writes: bool = False
    decider: Literal["llm", "rules"] = "llm"


class PerformanceConfig(_FrozenModel):
    """Caching and batching knobs."""

    cache_ttl: int = Field(default=3600, ge=0)  # seconds, 0 disables the cache
    batch_size: int = Field(default=10, gt=0)


class VectorStoreConfig(_FrozenModel):
    """Configuration for the vector store backend."""

    database_path: Path = Field(default_factory=get_database_path)
    collection: str = "chatbot_memories"


class HistoryConfig(_FrozenModel):
    """Configuration for the audit log backend."""

    database_path: Path = Field(default_factory=get_history_database_path)


class RetrySettings(_FrozenModel):
    """Retry policy for provider calls."""

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=2000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)


class ConfigError(Exception):
    """A lookup against the loaded configuration failed."""


def _default_models() -> dict[str, ModelConfig]:
    return {"default": ModelConfig(provider="openai", model=DEFAULT_CHAT_MODEL)}


class EmberConfig(_FrozenModel):
    """Everything ember reads from config.toml and the environment."""

    models: dict[str, ModelConfig] = Field(default_factory=_default_models)
    anthropic: ProviderConfig | None = None
    openai: ProviderConfig | None = None
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @model_validator(mode="after")
    def _validate_default_model(self) -> "EmberConfig":
        if "default" not in self.models:
            raise ValueError("No default model configured. Add [models.default]")
        return self

    def get_model(self, alias: str) -> ModelConfig:
        """Look up a ``[models.<alias>]`` entry.

        Raises:
            ConfigError: If the alias is not configured.
        """
        try:
            return self.models[alias]
        except KeyError:
            available = ", ".join(self.list_models())
            raise ConfigError(
                f"Unknown model alias '{alias}'. Available: {available}"
            ) from None

    def list_models(self) -> list[str]:
        return sorted(self.models)

    @property
    def default_model(self) -> ModelConfig:
        return self.get_model("default")

    def _provider_config(self, provider: str) -> ProviderConfig | None:
        return self.anthropic if provider == "anthropic" else self.openai

    def resolve_provider_key(self, provider: str) -> SecretStr | None:
        """The ``[<provider>] api_key`` setting, else its environment variable."""
        section = self._provider_config(provider)
        if section is not None and section.api_key is not None:
            return section.api_key
        env_value = os.environ.get(PROVIDER_KEY_ENV[provider])
        return SecretStr(env_value) if env_value else None

    def resolve_api_key(self, alias: str = "default") -> SecretStr | None:
        """API key for the provider serving a model alias."""
        return self.resolve_provider_key(self.get_model(alias).provider)

    def resolve_embeddings_api_key(self) -> SecretStr | None:
        return self.resolve_provider_key(self.embeddings.provider)

    def resolve_base_url(self, provider: str) -> str | None:
        """Custom API endpoint for a provider, if any."""
        section = self._provider_config(provider)
        return section.base_url if section else None
