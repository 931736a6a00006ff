"""Numpy-based brute-force vector index.

Cosine similarity via a single matmul over unit-normalized rows. At the
scale of one owner's memories (hundreds to low thousands of 1536-dim
vectors) this is a few milliseconds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import numpy as np

logger = logging.getLogger(__name__)


def to_blob(vector: list[float]) -> bytes:
    """Serialize a vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f4").astype(np.float32)


class NumpyVectorIndex:
    """Brute-force cosine similarity using numpy.

    Built per query from one owner's stored vectors. All vectors share a
    dimensionality, fixed by the first vector added. Rows are buffered and
    stacked into one matrix on the first search.
    """

    def __init__(self, dimensions: int | None = None) -> None:
        self._dimensions = dimensions
        self._vectors: np.ndarray = np.empty((0, 0), dtype=np.float32)
        self._ids: list[str] = []
        self._pending: list[np.ndarray] = []

    @classmethod
    def from_items(
        cls,
        items: Iterable[tuple[str, list[float] | np.ndarray]],
        dimensions: int | None = None,
    ) -> NumpyVectorIndex:
        index = cls(dimensions)
        for node_id, embedding in items:
            index.add(node_id, embedding)
        return index

    def _flush(self) -> None:
        if not self._pending:
            return
        new_block = np.stack(self._pending)
        if self._vectors.size == 0:
            self._vectors = new_block
        else:
            self._vectors = np.vstack([self._vectors, new_block])
        self._pending.clear()

    @property
    def count(self) -> int:
        return len(self._ids)

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def search(
        self, query_embedding: list[float] | np.ndarray, limit: int = 10
    ) -> list[tuple[str, float]]:
        """Return (id, similarity) pairs sorted by descending similarity.

        Raises:
            ValueError: If the query dimensionality differs from the index.
        """
        if len(self._ids) == 0 or limit <= 0:
            return []

        q = np.asarray(query_embedding, dtype=np.float32)
        if self._dimensions is not None and q.shape[0] != self._dimensions:
            raise ValueError(
                f"Query has {q.shape[0]} dimensions, index has {self._dimensions}"
            )
        norm = np.linalg.norm(q)
        if norm == 0:
            return []
        q = q / norm

        self._flush()
        scores = self._vectors @ q

        k = min(limit, len(self._ids))
        if k >= len(self._ids):
            top_k = np.argsort(scores, kind="stable")[::-1][:k]
        else:
            top_k = np.argpartition(scores, -k)[-k:]
            top_k = top_k[np.argsort(scores[top_k])[::-1]]

        return [(self._ids[i], float(scores[i])) for i in top_k]

    def add(self, node_id: str, embedding: list[float] | np.ndarray) -> None:
        """Append a vector.

        Zero vectors are skipped since they have no direction.

        Raises:
            ValueError: If the vector dimensionality differs from the index.
        """
        vec = np.array(embedding, dtype=np.float32)
        if self._dimensions is None:
            self._dimensions = vec.shape[0]
        elif vec.shape[0] != self._dimensions:
            raise ValueError(
                f"Vector for {node_id} has {vec.shape[0]} dimensions, "
                f"index has {self._dimensions}"
            )

        norm = np.linalg.norm(vec)
        if norm == 0:
            logger.warning("Skipping zero-norm embedding for %s", node_id)
            return
        vec /= norm

        self._ids.append(node_id)
        self._pending.append(vec)
