"""SQLite-backed tree storage."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from nestedset.db.connection import Database
from nestedset.db.schema import validate_table_name
from nestedset.errors import ContentionError
from nestedset.models import NodeRecord
from nestedset.storage.base import RangeColumn, T, TreeStorage
from nestedset.utils.json import dump_payload, parse_payload

logger = logging.getLogger(__name__)

_COLUMNS = {"left": "lft", "right": "rgt"}
_LOCK_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def _is_lock_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(text in message for text in _LOCK_MESSAGES)


class SQLiteTreeStorage(TreeStorage):
    """Nested-set rows in SQLite tables, one table per node type.

    SQLite allows a single writer per database, so ``transaction(root_id)``
    serializes all writers, not only writers of the same tree.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    async def ensure_table(self, model: type[NodeRecord]) -> None:
        await self._db.ensure_table(self._table(model))

    async def query_ordered(
        self,
        model: type[T],
        root_id: int | None = None,
        *,
        min_left: int | None = None,
        max_left: int | None = None,
        min_right: int | None = None,
        max_right: int | None = None,
        min_level: int | None = None,
        max_level: int | None = None,
    ) -> list[T]:
        if not await self._exists(model):
            return []
        clauses: list[str] = []
        params: list[int] = []
        for clause, value in (
            ("root_id = ?", root_id),
            ("lft >= ?", min_left),
            ("lft <= ?", max_left),
            ("rgt >= ?", min_right),
            ("rgt <= ?", max_right),
            ("level >= ?", min_level),
            ("level <= ?", max_level),
        ):
            if value is not None:
                clauses.append(clause)
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._db.fetchall(
            f"SELECT * FROM {self._table(model)} {where} ORDER BY root_id, lft",
            tuple(params),
        )
        return [self._row_to_record(model, row) for row in rows]

    async def get_row(self, model: type[T], node_id: str) -> T | None:
        if not await self._exists(model):
            return None
        row = await self._db.fetchone(
            f"SELECT * FROM {self._table(model)} WHERE id = ?", (node_id,)
        )
        return self._row_to_record(model, row) if row is not None else None

    async def find_by_left(self, model: type[T], root_id: int, left: int) -> T | None:
        if not await self._exists(model):
            return None
        row = await self._db.fetchone(
            f"SELECT * FROM {self._table(model)} WHERE root_id = ? AND lft = ?",
            (root_id, left),
        )
        return self._row_to_record(model, row) if row is not None else None

    async def find_by_right(self, model: type[T], root_id: int, right: int) -> T | None:
        if not await self._exists(model):
            return None
        row = await self._db.fetchone(
            f"SELECT * FROM {self._table(model)} WHERE root_id = ? AND rgt = ?",
            (root_id, right),
        )
        return self._row_to_record(model, row) if row is not None else None

    async def shift_range(
        self,
        model: type[NodeRecord],
        root_id: int,
        column: RangeColumn,
        delta: int,
        lower: int,
        upper: int | None = None,
    ) -> int:
        self._require_transaction()
        col = _COLUMNS[column]
        sql = f"UPDATE {self._table(model)} SET {col} = {col} + ? WHERE root_id = ? AND {col} >= ?"
        params: tuple = (delta, root_id, lower)
        if upper is not None:
            sql += f" AND {col} <= ?"
            params += (upper,)
        cursor = await self._db.execute(sql, params)
        return cursor.rowcount

    async def detach_subtree(
        self, model: type[NodeRecord], root_id: int, left: int, right: int
    ) -> int:
        self._require_transaction()
        cursor = await self._db.execute(
            f"UPDATE {self._table(model)} SET lft = -lft, rgt = -rgt "
            "WHERE root_id = ? AND lft >= ? AND rgt <= ?",
            (root_id, left, right),
        )
        return cursor.rowcount

    async def attach_subtree(
        self, model: type[NodeRecord], root_id: int, offset: int, level_delta: int
    ) -> int:
        self._require_transaction()
        cursor = await self._db.execute(
            f"UPDATE {self._table(model)} "
            "SET lft = -lft + ?, rgt = -rgt + ?, level = level + ? "
            "WHERE root_id = ? AND lft < 0",
            (offset, offset, level_delta, root_id),
        )
        return cursor.rowcount

    async def insert_row(self, row: NodeRecord) -> None:
        self._require_transaction()
        await self.ensure_table(type(row))
        await self._db.execute(
            f"""
            INSERT INTO {self._table(type(row))}
                (id, root_id, lft, rgt, level, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                row.id,
                row.root_id,
                row.left,
                row.right,
                row.level,
                dump_payload(row.payload()),
            ),
        )

    async def delete_range(
        self, model: type[NodeRecord], root_id: int, left: int, right: int
    ) -> int:
        self._require_transaction()
        cursor = await self._db.execute(
            f"DELETE FROM {self._table(model)} WHERE root_id = ? AND lft >= ? AND rgt <= ?",
            (root_id, left, right),
        )
        return cursor.rowcount

    async def next_root_id(self, model: type[NodeRecord]) -> int:
        """Allocate a root id never handed out before, even to a deleted tree."""
        self._require_transaction()
        await self.ensure_table(model)
        table = self._table(model)
        row = await self._db.fetchone(
            f"""
            SELECT MAX(
                COALESCE((SELECT MAX(root_id) FROM {table}_roots), 0),
                COALESCE((SELECT MAX(root_id) FROM {table}), 0)
            ) + 1 AS next_id
            """
        )
        assert row is not None
        root_id = row["next_id"]
        await self._db.execute(f"INSERT INTO {table}_roots (root_id) VALUES (?)", (root_id,))
        return root_id

    @asynccontextmanager
    async def transaction(self, root_id: int | None = None) -> AsyncIterator[None]:
        try:
            async with self._db.transaction():
                yield
        except aiosqlite.OperationalError as exc:
            if _is_lock_error(exc):
                logger.warning("Write lock contention on root %s: %s", root_id, exc)
                raise ContentionError(str(exc)) from exc
            raise

    async def _exists(self, model: type[NodeRecord]) -> bool:
        return await self._db.has_table(self._table(model))

    def _require_transaction(self) -> None:
        if not self._db.in_transaction:
            raise RuntimeError("Range writes must run inside storage.transaction()")

    @staticmethod
    def _table(model: type[NodeRecord]) -> str:
        return validate_table_name(model.table_name)

    @staticmethod
    def _row_to_record(model: type[T], row: aiosqlite.Row) -> T:
        """Convert a database row to a node record of the given type."""
        return model.model_validate(
            {
                **parse_payload(row["payload"]),
                "id": row["id"],
                "root_id": row["root_id"],
                "left": row["lft"],
                "right": row["rgt"],
                "level": row["level"],
            }
        )
