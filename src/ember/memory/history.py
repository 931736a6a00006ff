"""Append-only audit log of memory mutations."""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from ember.db.engine import Database
from ember.db.models import HistoryRecord, as_utc, naive_utc, utc_now
from ember.memory.errors import StoreError, ValidationError
from ember.memory.types import HistoryEntry, MemoryEvent

logger = logging.getLogger(__name__)


def validate_history_values(
    event: MemoryEvent, prev_value: str | None, new_value: str | None
) -> None:
    """Enforce the value shape of each event kind.

    ADD: no previous value, new value set. DELETE: previous value set, no
    new value. UPDATE: both set. NONE is never recorded.

    Raises:
        ValidationError: If the combination is invalid.
    """
    if event == MemoryEvent.NONE:
        raise ValidationError("NONE events are not recorded in history")
    if event == MemoryEvent.ADD and (prev_value is not None or new_value is None):
        raise ValidationError("ADD history requires new_value and no prev_value")
    if event == MemoryEvent.DELETE and (prev_value is None or new_value is not None):
        raise ValidationError("DELETE history requires prev_value and no new_value")
    if event == MemoryEvent.UPDATE and (prev_value is None or new_value is None):
        raise ValidationError("UPDATE history requires prev_value and new_value")


def _to_entry(record: HistoryRecord) -> HistoryEntry:
    return HistoryEntry(
        id=record.id,
        memory_id=record.memory_id,
        owner_id=record.owner_id,
        prev_value=record.prev_value,
        new_value=record.new_value,
        event=MemoryEvent(record.event),
        timestamp=as_utc(record.created_at),
        metadata=record.metadata_,
    )


class HistoryStore:
    """Audit log over the ``memory_history`` table.

    Rows are only ever inserted. Reads are newest first, with insertion
    order breaking timestamp ties.
    """

    def __init__(self, db: Database):
        self._db = db

    async def initialize(self) -> None:
        await self._db.connect()
        await self._db.create_tables([HistoryRecord.__table__])

    async def add(
        self,
        memory_id: str,
        owner_id: str,
        event: MemoryEvent,
        prev_value: str | None,
        new_value: str | None,
        metadata: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        """Append one row.

        Raises:
            ValidationError: If the row violates the event's value shape.
            StoreError: If the write fails.
        """
        event = MemoryEvent(event)
        validate_history_values(event, prev_value, new_value)
        if not memory_id or not owner_id:
            raise ValidationError("History rows require memory_id and owner_id")

        record = HistoryRecord(
            id=str(uuid.uuid4()),
            memory_id=memory_id,
            owner_id=owner_id,
            prev_value=prev_value,
            new_value=new_value,
            event=event.value,
            created_at=naive_utc(timestamp or utc_now()),
            metadata_=metadata,
        )
        try:
            async with self._db.session() as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise StoreError(f"History write failed for {memory_id}: {e}") from e

        return _to_entry(record)

    async def _select(self, stmt: Any) -> list[HistoryEntry]:
        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [_to_entry(record) for record in result.scalars()]

    @staticmethod
    def _newest_first(stmt: Any) -> Any:
        return stmt.order_by(HistoryRecord.created_at.desc(), HistoryRecord.seq.desc())

    async def get_by_memory_id(self, memory_id: str) -> list[HistoryEntry]:
        return await self._select(
            self._newest_first(
                select(HistoryRecord).where(HistoryRecord.memory_id == memory_id)
            )
        )

    async def get_by_owner(self, owner_id: str, limit: int = 100) -> list[HistoryEntry]:
        return await self._select(
            self._newest_first(
                select(HistoryRecord).where(HistoryRecord.owner_id == owner_id)
            ).limit(limit)
        )

    async def get_all(self, limit: int = 100) -> list[HistoryEntry]:
        return await self._select(
            self._newest_first(select(HistoryRecord)).limit(limit)
        )

    async def count_by_owner(self, owner_id: str) -> int:
        async with self._db.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(HistoryRecord)
                .where(HistoryRecord.owner_id == owner_id)
            )
            return result.scalar_one()

    async def count_by_memory_id(self, memory_id: str) -> int:
        async with self._db.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(HistoryRecord)
                .where(HistoryRecord.memory_id == memory_id)
            )
            return result.scalar_one()

    async def is_healthy(self) -> bool:
        try:
            async with self._db.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, RuntimeError):
            logger.warning("history_store_unhealthy", exc_info=True)
            return False

    async def close(self) -> None:
        await self._db.disconnect()
