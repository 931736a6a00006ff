"""Vector store: memory documents with embeddings, scoped by owner.

The protocol is what the orchestrator depends on. ``SQLiteVectorStore`` keeps
records in SQLite (vectors as float32 blobs) and answers k-NN queries by
loading the owner's vectors into a numpy index per query, so every search
sees all previously committed writes.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ember.db.engine import Database
from ember.db.models import MemoryRecord, as_utc, naive_utc, utc_now
from ember.memory.errors import StoreError, ValidationError
from ember.memory.types import MemoryFilter, MemoryPayload, SearchResult
from ember.memory.vectors import NumpyVectorIndex, from_blob, to_blob

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "chatbot_memories"


@runtime_checkable
class VectorStore(Protocol):
    """Storage contract for memory vectors and their payloads."""

    async def insert(
        self,
        ids: list[str],
        vectors: list[list[float]],
        payloads: list[MemoryPayload],
    ) -> None: ...

    async def search(
        self,
        query_vector: list[float],
        filter: MemoryFilter,
        limit: int,
    ) -> list[SearchResult]: ...

    async def update(
        self,
        memory_id: str,
        vector: list[float],
        payload_patch: dict[str, Any],
    ) -> None: ...

    async def delete(self, memory_id: str) -> bool: ...

    async def get(self, memory_id: str) -> SearchResult | None: ...

    async def get_all_by_owner(
        self, owner_id: str, limit: int = 100
    ) -> list[SearchResult]: ...

    async def find_by_hash(
        self, owner_id: str, content_hash: str
    ) -> SearchResult | None: ...

    async def close(self) -> None: ...


def _to_result(record: MemoryRecord, score: float = 1.0) -> SearchResult:
    return SearchResult(
        id=record.id,
        score=score,
        payload=MemoryPayload(
            text=record.text,
            owner_id=record.owner_id,
            content_hash=record.content_hash,
            created_at=as_utc(record.created_at),
            updated_at=as_utc(record.updated_at),
            metadata=dict(record.metadata_ or {}),
        ),
    )


class SQLiteVectorStore:
    """VectorStore backed by SQLite and a numpy cosine index."""

    def __init__(
        self,
        db: Database,
        collection: str = DEFAULT_COLLECTION,
        dimensions: int | None = None,
    ):
        """Initialize the store.

        Args:
            db: Database holding the ``memories`` table.
            collection: Index name; records in other collections are invisible.
            dimensions: Required vector length. None accepts any length.
        """
        self._db = db
        self._collection = collection
        self._dimensions = dimensions

    @property
    def collection(self) -> str:
        return self._collection

    async def initialize(self) -> None:
        """Connect and create the memories table if needed."""
        await self._db.connect()
        await self._db.create_tables([MemoryRecord.__table__])

    async def index_exists(self) -> bool:
        async with self._db.engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).has_table(
                    MemoryRecord.__tablename__
                )
            )

    def _check_dimensions(self, vector: list[float]) -> str | None:
        if self._dimensions is not None and len(vector) != self._dimensions:
            return f"expected {self._dimensions} dimensions, got {len(vector)}"
        return None

    async def insert(
        self,
        ids: list[str],
        vectors: list[list[float]],
        payloads: list[MemoryPayload],
    ) -> None:
        """Insert records, each in its own savepoint; valid entries are committed.

        Entries are checked up front (id, owner, text, dimensions). Anything
        the database still refuses, such as an id inserted concurrently after
        that check, only rolls back its own savepoint.

        Raises:
            StoreError: If the argument lists differ in length, or after
                committing the valid entries if any entry was rejected.
        """
        if not (len(ids) == len(vectors) == len(payloads)):
            raise StoreError(
                f"Mismatched insert arguments: {len(ids)} ids, "
                f"{len(vectors)} vectors, {len(payloads)} payloads"
            )
        if not ids:
            return

        failed: list[tuple[str, str]] = []
        try:
            async with self._db.session() as session:
                existing = set(
                    (
                        await session.execute(
                            select(MemoryRecord.id).where(MemoryRecord.id.in_(ids))
                        )
                    ).scalars()
                )
                seen: set[str] = set()
                for memory_id, vector, payload in zip(
                    ids, vectors, payloads, strict=True
                ):
                    reason = self._check_dimensions(vector)
                    if not memory_id:
                        reason = "missing id"
                    elif memory_id in existing or memory_id in seen:
                        reason = "duplicate id"
                    elif not payload.owner_id:
                        reason = "missing owner_id"
                    elif not payload.text.strip():
                        reason = "empty text"
                    if reason:
                        failed.append((memory_id, reason))
                        continue

                    record = MemoryRecord(
                        id=memory_id,
                        collection=self._collection,
                        owner_id=payload.owner_id,
                        text=payload.text,
                        content_hash=payload.content_hash,
                        embedding=to_blob(vector),
                        dimensions=len(vector),
                        created_at=naive_utc(payload.created_at),
                        updated_at=naive_utc(payload.updated_at),
                        metadata_=payload.metadata or None,
                    )
                    try:
                        async with session.begin_nested():
                            session.add(record)
                    except IntegrityError as e:
                        failed.append((memory_id, f"rejected by database: {e.orig}"))
                        continue
                    seen.add(memory_id)
        except SQLAlchemyError as e:
            raise StoreError(
                f"Insert failed: {e}", failed=[(i, str(e)) for i in ids]
            ) from e

        if failed:
            logger.warning(
                "vector_store_insert_partial_failure",
                extra={"store.failed_count": len(failed), "store.total": len(ids)},
            )
            raise StoreError(
                f"{len(failed)} of {len(ids)} inserts failed", failed=failed
            )

    async def search(
        self,
        query_vector: list[float],
        filter: MemoryFilter,
        limit: int,
    ) -> list[SearchResult]:
        """k-NN search within one owner's memories, best match first.

        Raises:
            ValidationError: If the filter has no owner_id.
            StoreError: If the query fails.
        """
        if not filter.owner_id:
            raise ValidationError("Search filter requires owner_id")
        if limit <= 0:
            return []

        stmt = select(MemoryRecord).where(
            MemoryRecord.collection == self._collection,
            MemoryRecord.owner_id == filter.owner_id,
            MemoryRecord.dimensions == len(query_vector),
        )
        if filter.created_after is not None:
            stmt = stmt.where(
                MemoryRecord.created_at >= naive_utc(filter.created_after)
            )
        if filter.created_before is not None:
            stmt = stmt.where(
                MemoryRecord.created_at <= naive_utc(filter.created_before)
            )

        try:
            async with self._db.session() as session:
                records = list((await session.execute(stmt)).scalars())
        except SQLAlchemyError as e:
            raise StoreError(f"Search failed: {e}") from e

        by_id = {record.id: record for record in records}
        index = NumpyVectorIndex.from_items(
            ((record.id, from_blob(record.embedding)) for record in records),
            dimensions=len(query_vector),
        )
        hits = index.search(query_vector, limit=limit)

        logger.debug(
            "vector_store_search",
            extra={
                "store.owner_id": filter.owner_id,
                "store.candidates": len(records),
                "store.hits": len(hits),
            },
        )
        return [_to_result(by_id[memory_id], score) for memory_id, score in hits]

    async def _get_record(self, session: Any, memory_id: str) -> MemoryRecord | None:
        result = await session.execute(
            select(MemoryRecord).where(
                MemoryRecord.id == memory_id,
                MemoryRecord.collection == self._collection,
            )
        )
        return result.scalar_one_or_none()

    async def update(
        self,
        memory_id: str,
        vector: list[float],
        payload_patch: dict[str, Any],
    ) -> None:
        """Replace the vector and merge ``payload_patch`` into the payload.

        Recognized patch keys: ``text``, ``content_hash``, ``metadata``
        (merged key-wise) and ``updated_at`` (defaults to now).

        Raises:
            StoreError: If the record does not exist or the write fails.
        """
        if reason := self._check_dimensions(vector):
            raise StoreError(f"Update of {memory_id} rejected: {reason}")

        try:
            async with self._db.session() as session:
                record = await self._get_record(session, memory_id)
                if record is None:
                    raise StoreError(f"Memory not found: {memory_id}")

                if "text" in payload_patch:
                    record.text = payload_patch["text"]
                if "content_hash" in payload_patch:
                    record.content_hash = payload_patch["content_hash"]
                if payload_patch.get("metadata"):
                    record.metadata_ = {
                        **(record.metadata_ or {}),
                        **payload_patch["metadata"],
                    }
                record.embedding = to_blob(vector)
                record.dimensions = len(vector)
                record.updated_at = naive_utc(
                    payload_patch.get("updated_at") or utc_now()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Update failed for {memory_id}: {e}") from e

    async def delete(self, memory_id: str) -> bool:
        """Delete a record. Missing records are not an error.

        Returns:
            True if a record was removed.
        """
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(MemoryRecord).where(
                        MemoryRecord.id == memory_id,
                        MemoryRecord.collection == self._collection,
                    )
                )
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StoreError(f"Delete failed for {memory_id}: {e}") from e

    async def get(self, memory_id: str) -> SearchResult | None:
        async with self._db.session() as session:
            record = await self._get_record(session, memory_id)
            return _to_result(record) if record else None

    async def get_all_by_owner(
        self, owner_id: str, limit: int = 100
    ) -> list[SearchResult]:
        """All of an owner's memories, newest first."""
        async with self._db.session() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(
                    MemoryRecord.collection == self._collection,
                    MemoryRecord.owner_id == owner_id,
                )
                .order_by(MemoryRecord.created_at.desc(), MemoryRecord.id)
                .limit(limit)
            )
            return [_to_result(record) for record in result.scalars()]

    async def find_by_hash(
        self, owner_id: str, content_hash: str
    ) -> SearchResult | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(
                    MemoryRecord.collection == self._collection,
                    MemoryRecord.owner_id == owner_id,
                    MemoryRecord.content_hash == content_hash,
                )
                .order_by(MemoryRecord.created_at)
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return _to_result(record) if record else None

    async def count(self, owner_id: str | None = None) -> int:
        stmt = (
            select(func.count())
            .select_from(MemoryRecord)
            .where(MemoryRecord.collection == self._collection)
        )
        if owner_id is not None:
            stmt = stmt.where(MemoryRecord.owner_id == owner_id)
        async with self._db.session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def close(self) -> None:
        await self._db.disconnect()
