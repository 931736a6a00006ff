"""Embedding generation for semantic search."""

import asyncio
import logging

from ember.llm import LLMProvider, LLMRegistry
from ember.memory.cache import EmbeddingCache
from ember.memory.errors import EmbeddingError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 1536


class EmbeddingGenerator:
    """Generate embeddings for text using LLM providers.

    Large batches are split into chunks of ``batch_size`` texts which are
    requested concurrently; output order always matches input order.
    """

    def __init__(
        self,
        registry: LLMRegistry,
        model: str,
        provider: str = "openai",
        *,
        dimensions: int = DEFAULT_DIMENSIONS,
        batch_size: int = 10,
        cache: EmbeddingCache | None = None,
    ):
        """Initialize embedding generator.

        Args:
            registry: LLM provider registry.
            model: Embedding model to use.
            provider: Provider name (Anthropic has no embeddings API).
            dimensions: Expected vector length. Mismatches are logged, not fixed.
            batch_size: Maximum texts per upstream request.
            cache: Optional TTL cache consulted before calling the provider.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._registry = registry
        self._model = model
        self._provider_name = provider
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._cache = cache

    @property
    def _provider(self) -> LLMProvider:
        return self._registry.get(self._provider_name)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ValidationError: If the text is empty or whitespace-only.
            EmbeddingError: If the provider call fails.
        """
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Returns:
            List of embedding vectors (1:1 correspondence with input).

        Raises:
            ValidationError: If any text is empty or whitespace-only.
            EmbeddingError: If any provider call fails or returns the wrong
                number of vectors.
        """
        if not texts:
            return []

        for i, t in enumerate(texts):
            if not isinstance(t, str) or not t.strip():
                raise ValidationError(f"Empty or whitespace-only text at index {i}")

        results: list[list[float] | None] = [None] * len(texts)
        pending: list[int] = []
        for i, text in enumerate(texts):
            cached = self._cache.get(self._model, text) if self._cache else None
            if cached is not None:
                results[i] = cached
            else:
                pending.append(i)

        if pending:
            chunks = [
                pending[start : start + self._batch_size]
                for start in range(0, len(pending), self._batch_size)
            ]
            chunk_vectors = await asyncio.gather(
                *(self._embed_chunk([texts[i] for i in chunk]) for chunk in chunks)
            )
            for chunk, vectors in zip(chunks, chunk_vectors, strict=True):
                for i, vector in zip(chunk, vectors, strict=True):
                    results[i] = vector
                    if self._cache:
                        self._cache.set(self._model, texts[i], vector)

        logger.debug(
            "embedding_batch_complete",
            extra={
                "embedding.count": len(texts),
                "embedding.cache_hits": len(texts) - len(pending),
                "embedding.model": self._model,
            },
        )
        return [vector for vector in results if vector is not None]

    async def _embed_chunk(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self._provider.embed(texts, model=self._model)
        except Exception as e:
            logger.warning(
                "embedding_request_failed",
                extra={"embedding.count": len(texts), "error.message": str(e)},
            )
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts"
            )

        for vector in vectors:
            if len(vector) != self._dimensions:
                logger.warning(
                    "embedding_dimension_mismatch",
                    extra={
                        "embedding.expected": self._dimensions,
                        "embedding.actual": len(vector),
                        "embedding.model": self._model,
                    },
                )
        return [list(vector) for vector in vectors]
