"""Provider construction and lookup by name."""

from __future__ import annotations

from typing import Literal

from pydantic import SecretStr

from ember.llm.anthropic import AnthropicProvider
from ember.llm.base import LLMProvider
from ember.llm.openai import OpenAIProvider
from ember.llm.retry import RetryConfig

ProviderName = Literal["anthropic", "openai"]

PROVIDER_CLASSES: dict[str, type[AnthropicProvider] | type[OpenAIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def create_llm_provider(
    provider: ProviderName,
    api_key: str | SecretStr | None = None,
    *,
    base_url: str | None = None,
    retry_config: RetryConfig | None = None,
) -> LLMProvider:
    """Build a provider client.

    A missing ``api_key`` defers to the vendor SDK's own environment lookup,
    which raises if nothing is found.

    Raises:
        ValueError: If the provider name is unknown.
    """
    try:
        cls = PROVIDER_CLASSES[provider]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {provider}") from None

    if isinstance(api_key, SecretStr):
        api_key = api_key.get_secret_value()
    return cls(api_key=api_key, base_url=base_url, retry_config=retry_config)


class LLMRegistry:
    """Providers available to one memory service, keyed by ``provider.name``.

    The chat model and the embedding model may come from different vendors,
    so the runtime registers each vendor it needs once and components look
    theirs up by name.
    """

    def __init__(self) -> None:
        self._providers: dict[str, LLMProvider] = {}

    def register(self, provider: LLMProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> LLMProvider:
        try:
            return self._providers[name]
        except KeyError:
            available = ", ".join(sorted(self._providers)) or "none"
            raise KeyError(
                f"Provider '{name}' not registered (available: {available})"
            ) from None

    def has(self, name: str) -> bool:
        return name in self._providers

    @property
    def providers(self) -> dict[str, LLMProvider]:
        return dict(self._providers)
