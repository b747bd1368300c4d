"""Async SQLite connection wrapper with WAL mode and explicit transactions."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from nestedset.config import Settings
from nestedset.db.schema import node_table_sql
from nestedset.errors import ContentionError

logger = logging.getLogger(__name__)


class Database:
    """Thin async wrapper around aiosqlite.

    The connection runs in autocommit mode; multi-statement writes go through
    ``transaction()``, which holds the connection's writer lock and an SQLite
    ``BEGIN IMMEDIATE`` lock until commit or rollback. Statements issued by
    other tasks wait for the open transaction to finish.
    """

    def __init__(
        self, connection: aiosqlite.Connection, lock_timeout: float | None = None
    ) -> None:
        self._conn = connection
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._lock_timeout = lock_timeout
        self._tables: set[str] = set()
        self._existing: set[str] = set()
        # created inside the open transaction; kept only if it commits
        self._pending: set[str] = set()

    @classmethod
    async def connect(
        cls,
        path: str = "nestedset.db",
        busy_timeout_ms: int = 5000,
        lock_timeout: float | None = 10.0,
        journal_mode: str = "WAL",
    ) -> "Database":
        """Create a connection with WAL mode, foreign keys, and a busy timeout."""
        conn = await aiosqlite.connect(path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute(f"PRAGMA journal_mode={journal_mode}")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        return cls(conn, lock_timeout=lock_timeout)

    @classmethod
    async def from_settings(cls, settings: Settings) -> "Database":
        return await cls.connect(
            settings.database_path,
            busy_timeout_ms=settings.busy_timeout_ms,
            lock_timeout=settings.lock_timeout,
            journal_mode=settings.journal_mode,
        )

    @property
    def in_transaction(self) -> bool:
        """True when the current task holds the open transaction."""
        return self._owner is not None and self._owner is asyncio.current_task()

    async def ensure_table(self, table: str) -> None:
        """Create a node table and its indexes if they don't exist. Idempotent."""
        if table in self._tables or (self.in_transaction and table in self._pending):
            return
        async with self._serialized():
            # executescript would commit an open transaction; run statements one by one
            for statement in node_table_sql(table).split(";"):
                if statement.strip():
                    await self._conn.execute(statement)
        if self.in_transaction:
            self._pending.add(table)
        else:
            self._tables.add(table)

    async def has_table(self, table: str) -> bool:
        """Whether a table exists, without creating it."""
        if table in self._tables or table in self._existing:
            return True
        if self.in_transaction and table in self._pending:
            return True
        row = await self.fetchone(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        )
        if row is None:
            return False
        if not self.in_transaction:
            self._existing.add(table)
        return True

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Execute a single SQL statement."""
        async with self._serialized():
            return await self._conn.execute(sql, params or ())

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        """Execute and return a single row."""
        async with self._serialized():
            cursor = await self._conn.execute(sql, params or ())
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        """Execute and return all rows."""
        async with self._serialized():
            cursor = await self._conn.execute(sql, params or ())
            return list(await cursor.fetchall())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the block inside one all-or-nothing write transaction.

        Nested use from the task that already owns the transaction joins it.
        """
        if self.in_transaction:
            yield
            return

        await self._acquire()
        self._owner = asyncio.current_task()
        try:
            await self._conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            self._release()
            raise

        try:
            yield
        except BaseException:
            try:
                await self._conn.execute("ROLLBACK")
            finally:
                self._release()
            raise

        try:
            await self._conn.execute("COMMIT")
            self._tables |= self._pending
        except BaseException:
            await self._conn.execute("ROLLBACK")
            raise
        finally:
            self._release()

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()

    @asynccontextmanager
    async def _serialized(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
            return
        await self._acquire()
        try:
            yield
        finally:
            self._lock.release()

    async def _acquire(self) -> None:
        try:
            await asyncio.wait_for(self._lock.acquire(), self._lock_timeout)
        except TimeoutError:
            logger.warning("Writer lock not acquired within %ss", self._lock_timeout)
            raise ContentionError(
                f"Connection busy for more than {self._lock_timeout}s"
            ) from None

    def _release(self) -> None:
        self._pending.clear()
        self._owner = None
        self._lock.release()
