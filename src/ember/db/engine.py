"""Async SQLAlchemy engine for the vector store and audit log databases.

Each store owns one ``Database``; the memory and history stores may point at
different files so the audit log can be kept after the vectors are wiped.
"""

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Self

from sqlalchemy import Table, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ember.db.models import Base

SQLITE_BUSY_TIMEOUT_MS = 5000


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def _on_sqlite_connect(dbapi_connection, connection_record) -> None:
    # The driver's implicit BEGIN breaks SAVEPOINT; _on_sqlite_begin emits it.
    dbapi_connection.isolation_level = None
    # WAL so searches do not wait on an in-flight add.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _on_sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


class Database:
    """Lazily connected engine plus a commit-or-rollback session helper.

    ``connect()`` and ``disconnect()`` are idempotent. The instance can also
    be used as ``async with Database(...) as db``.
    """

    def __init__(
        self, database_url: str | None = None, database_path: Path | None = None
    ):
        if database_url:
            self._url = database_url
        elif database_path:
            database_path.parent.mkdir(parents=True, exist_ok=True)
            self._url = sqlite_url(database_path)
        else:
            raise ValueError("Either database_url or database_path must be provided")

        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError(f"Database {self._url} is not connected")
        return self._engine

    async def connect(self) -> None:
        if self._engine is not None:
            return
        engine = create_async_engine(self._url, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _on_sqlite_connect)
            event.listen(engine.sync_engine, "begin", _on_sqlite_begin)
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    async def create_tables(self, tables: Sequence[Table] | None = None) -> None:
        """Create missing tables; ``None`` means every mapped table."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=tables)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """A session that commits on success and rolls back on any error."""
        if self._sessions is None:
            raise RuntimeError(f"Database {self._url} is not connected")
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
