"""Model vendor clients used for extraction, reconciliation and embeddings."""

from ember.llm.anthropic import AnthropicProvider
from ember.llm.base import LLMProvider
from ember.llm.openai import OpenAIProvider
from ember.llm.registry import LLMRegistry, ProviderName, create_llm_provider
from ember.llm.retry import RetryConfig, is_retryable_error, with_retry
from ember.llm.types import CompletionResponse, Message, ResponseFormat, Role, Usage

__all__ = [
    "AnthropicProvider",
    "CompletionResponse",
    "LLMProvider",
    "LLMRegistry",
    "Message",
    "OpenAIProvider",
    "ProviderName",
    "ResponseFormat",
    "RetryConfig",
    "Role",
    "Usage",
    "create_llm_provider",
    "is_retryable_error",
    "with_retry",
]
