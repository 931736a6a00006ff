"""Memory runtime bootstrap: wire providers, stores and the orchestrator from config."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ember.db import Database
from ember.llm import LLMRegistry, RetryConfig, create_llm_provider
from ember.memory.cache import EmbeddingCache
from ember.memory.decider import ActionDecider, LLMActionDecider, RuleBasedActionDecider
from ember.memory.embeddings import EmbeddingGenerator
from ember.memory.extractor import FactExtractor
from ember.memory.history import HistoryStore
from ember.memory.service import MemoryService
from ember.memory.store import SQLiteVectorStore

if TYPE_CHECKING:
    from ember.config import EmberConfig

logger = logging.getLogger(__name__)


def retry_config_from_settings(config: EmberConfig) -> RetryConfig:
    settings = config.retry
    return RetryConfig(
        enabled=settings.enabled,
        max_retries=settings.max_retries,
        base_delay_ms=settings.base_delay_ms,
        max_delay_ms=settings.max_delay_ms,
    )


def create_registry_from_config(config: EmberConfig) -> LLMRegistry:
    """Register the chat provider and the embeddings provider.

    Raises:
        openai.OpenAIError: If no OpenAI key is configured or in the environment.
    """
    retry_config = retry_config_from_settings(config)
    registry = LLMRegistry()

    chat_provider = config.default_model.provider
    registry.register(
        create_llm_provider(
            chat_provider,
            config.resolve_api_key(),
            base_url=config.resolve_base_url(chat_provider),
            retry_config=retry_config,
        )
    )

    embeddings_provider = config.embeddings.provider
    if not registry.has(embeddings_provider):
        registry.register(
            create_llm_provider(
                embeddings_provider,
                config.resolve_embeddings_api_key(),
                base_url=config.resolve_base_url(embeddings_provider),
                retry_config=retry_config,
            )
        )
    return registry


def create_decider(config: EmberConfig, registry: LLMRegistry) -> ActionDecider:
    memory = config.memory
    if memory.decider == "rules":
        return RuleBasedActionDecider(similarity_threshold=memory.similarity_threshold)

    model = config.default_model
    return LLMActionDecider(
        registry.get(model.provider),
        model.model,
        temperature=memory.decision_temperature,
        similarity_threshold=memory.similarity_threshold,
        max_tokens=model.max_tokens,
    )


async def create_memory_service(
    config: EmberConfig,
    *,
    registry: LLMRegistry | None = None,
) -> MemoryService:
    """Create a fully-wired MemoryService.

    Args:
        config: Application configuration.
        registry: Provider registry; built from config when omitted.

    Returns:
        A service whose stores are connected and whose tables exist.
    """
    registry = registry or create_registry_from_config(config)
    model = config.default_model

    cache = (
        EmbeddingCache(ttl=config.performance.cache_ttl)
        if config.performance.cache_ttl > 0
        else None
    )
    embeddings = EmbeddingGenerator(
        registry=registry,
        model=config.embeddings.model,
        provider=config.embeddings.provider,
        dimensions=config.embeddings.dimensions,
        batch_size=config.performance.batch_size,
        cache=cache,
    )

    vector_store = SQLiteVectorStore(
        Database(database_path=config.vector_store.database_path),
        collection=config.vector_store.collection,
        dimensions=config.embeddings.dimensions,
    )
    await vector_store.initialize()

    history_store = HistoryStore(Database(database_path=config.history.database_path))
    await history_store.initialize()

    extractor = FactExtractor(
        registry.get(model.provider),
        model.model,
        max_messages=config.memory.max_messages,
        min_message_length=config.memory.min_message_length,
        temperature=config.memory.extraction_temperature,
        max_tokens=model.max_tokens,
    )

    logger.debug(
        "memory_service_created",
        extra={
            "memory.enabled": config.memory.enabled,
            "memory.collection": config.vector_store.collection,
            "memory.decider": config.memory.decider,
            "embeddings.model": config.embeddings.model,
        },
    )
    return MemoryService(
        config=config,
        vector_store=vector_store,
        history_store=history_store,
        embeddings=embeddings,
        extractor=extractor,
        decider=create_decider(config, registry),
    )
