"""In-memory TTL cache for embedding vectors."""

import time
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import TTLCache


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int
    misses: int
    size: int
    maxsize: int


class EmbeddingCache:
    """LRU cache with TTL, keyed by (model, text).

    Texts are only stripped, not case-folded: embeddings are case-sensitive.
    Vectors are copied on the way in and out so callers cannot mutate
    cached entries.
    """

    def __init__(
        self,
        ttl: int,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache.

        Args:
            ttl: Time-to-live in seconds.
            maxsize: Maximum number of cached vectors.
            timer: Clock used for expiry.
        """
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _key(model: str, text: str) -> tuple[str, str]:
        return (model, text.strip())

    def get(self, model: str, text: str) -> list[float] | None:
        vector = self._cache.get(self._key(model, text))
        if vector is None:
            self._misses += 1
            return None
        self._hits += 1
        return list(vector)

    def set(self, model: str, text: str, vector: list[float]) -> None:
        self._cache[self._key(model, text)] = list(vector)

    def invalidate(self, model: str | None = None, text: str | None = None) -> None:
        """Drop one entry, or everything when no key is given."""
        if model is None or text is None:
            self._cache.clear()
        else:
            self._cache.pop(self._key(model, text), None)

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._cache),
            maxsize=self._cache.maxsize,
        )
