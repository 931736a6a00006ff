"""Tests for embedding generation and caching."""

import logging

import pytest

from ember.llm.registry import LLMRegistry
from ember.memory.cache import EmbeddingCache
from ember.memory.embeddings import EmbeddingGenerator
from ember.memory.errors import EmbeddingError, TransportError, ValidationError
from tests.conftest import TEST_DIMENSIONS, FakeEmbeddingProvider


def make_generator(
    provider: FakeEmbeddingProvider,
    *,
    batch_size: int = 10,
    cache: EmbeddingCache | None = None,
    dimensions: int = TEST_DIMENSIONS,
) -> EmbeddingGenerator:
    registry = LLMRegistry()
    registry.register(provider)  # type: ignore[arg-type]
    return EmbeddingGenerator(
        registry,
        "fake-embedding",
        dimensions=dimensions,
        batch_size=batch_size,
        cache=cache,
    )


class ShortChangingProvider(FakeEmbeddingProvider):
    async def embed(self, texts, *, model=None):
        vectors = await super().embed(texts, model=model)
        return vectors[:-1]


class TestEmbeddingGenerator:
    async def test_embed_single(self):
        provider = FakeEmbeddingProvider()
        generator = make_generator(provider)

        vector = await generator.embed("Likes tea")

        assert vector == provider.vector("Likes tea")
        assert provider.embed_calls == [["Likes tea"]]
        assert generator.model == "fake-embedding"
        assert generator.dimensions == TEST_DIMENSIONS

    async def test_batches_preserve_input_order(self):
        provider = FakeEmbeddingProvider()
        generator = make_generator(provider, batch_size=2)
        texts = ["one fish", "two fish", "red fish", "blue fish", "old fish"]

        vectors = await generator.embed_batch(texts)

        assert vectors == [provider.vector(text) for text in texts]
        assert [len(call) for call in provider.embed_calls] == [2, 2, 1]

    async def test_empty_batch(self):
        provider = FakeEmbeddingProvider()
        assert await make_generator(provider).embed_batch([]) == []
        assert provider.embed_calls == []

    @pytest.mark.parametrize("bad", ["", "   ", None])
    async def test_rejects_empty_text(self, bad):
        provider = FakeEmbeddingProvider()
        generator = make_generator(provider)

        with pytest.raises(ValidationError):
            await generator.embed_batch(["fine", bad])  # type: ignore[list-item]
        assert provider.embed_calls == []

    async def test_provider_failure_is_transport_error(self):
        provider = FakeEmbeddingProvider(fail_with=RuntimeError("503 Service Unavailable"))
        generator = make_generator(provider)

        with pytest.raises(EmbeddingError) as exc_info:
            await generator.embed("Likes tea")

        assert isinstance(exc_info.value, TransportError)
        assert exc_info.value.retryable is True

    async def test_wrong_vector_count_is_error(self):
        generator = make_generator(ShortChangingProvider())

        with pytest.raises(EmbeddingError):
            await generator.embed_batch(["one", "two"])

    async def test_dimension_mismatch_is_logged(self, caplog):
        provider = FakeEmbeddingProvider(dimensions=8)
        generator = make_generator(provider, dimensions=16)

        with caplog.at_level(logging.WARNING, logger="ember.memory.embeddings"):
            vector = await generator.embed("Likes tea")

        assert len(vector) == 8
        assert "embedding_dimension_mismatch" in caplog.messages

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            make_generator(FakeEmbeddingProvider(), batch_size=0)

    async def test_unregistered_provider(self):
        generator = EmbeddingGenerator(LLMRegistry(), "fake-embedding")
        with pytest.raises(EmbeddingError):
            await generator.embed("Likes tea")

    async def test_cache_skips_provider_for_known_texts(self):
        provider = FakeEmbeddingProvider()
        cache = EmbeddingCache(ttl=60)
        generator = make_generator(provider, cache=cache)

        first = await generator.embed_batch(["Likes tea", "Has a cat"])
        second = await generator.embed_batch(["Has a cat", "Plays chess", "Likes tea "])

        assert provider.embed_calls == [["Likes tea", "Has a cat"], ["Plays chess"]]
        assert second[0] == first[1]
        assert second[2] == first[0]
        stats = cache.stats()
        assert stats.hits == 2
        assert stats.size == 3


class TestEmbeddingCache:
    def test_get_set(self):
        cache = EmbeddingCache(ttl=60)

        assert cache.get("model", "text") is None
        cache.set("model", "text", [1.0, 2.0])

        assert cache.get("model", "  text  ") == [1.0, 2.0]
        assert cache.get("other-model", "text") is None
        assert cache.get("model", "TEXT") is None

    def test_entries_are_copied(self):
        cache = EmbeddingCache(ttl=60)
        vector = [1.0, 2.0]
        cache.set("model", "text", vector)
        vector.append(3.0)

        cached = cache.get("model", "text")
        assert cached == [1.0, 2.0]
        cached.append(4.0)  # type: ignore[union-attr]
        assert cache.get("model", "text") == [1.0, 2.0]

    def test_expiry(self):
        now = [1000.0]
        cache = EmbeddingCache(ttl=1, timer=lambda: now[0])
        cache.set("model", "text", [1.0])
        assert cache.get("model", "text") == [1.0]

        now[0] += 5

        assert cache.get("model", "text") is None

    def test_maxsize_evicts(self):
        cache = EmbeddingCache(ttl=60, maxsize=2)
        for text in ("a", "b", "c"):
            cache.set("model", text, [1.0])

        assert cache.stats().size == 2

    def test_invalidate(self):
        cache = EmbeddingCache(ttl=60)
        cache.set("model", "a", [1.0])
        cache.set("model", "b", [2.0])

        cache.invalidate("model", "a")
        assert cache.get("model", "a") is None
        assert cache.get("model", "b") == [2.0]

        cache.invalidate()
        assert cache.stats().size == 0

    def test_stats(self):
        cache = EmbeddingCache(ttl=60, maxsize=10)
        cache.set("model", "a", [1.0])
        cache.get("model", "a")
        cache.get("model", "missing")

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size, stats.maxsize) == (1, 1, 1, 10)
