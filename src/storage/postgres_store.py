"""
PostgreSQL implementation of the remote store adapter (asyncpg).

Table and column names are checked against storage.remote_store.SCHEMA before
being placed into SQL; values always travel as bind parameters.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, List, Optional, Sequence

import asyncpg

from astra.errors import RemoteFailure
from storage import db
from storage.remote_store import (
    OPERATORS,
    Filter,
    Order,
    RemoteStore,
    Row,
    check_columns,
    check_filters,
)

logger = logging.getLogger(__name__)

_DRIVER_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class _NoMatch(Exception):
    """A filter value can never match (e.g. malformed UUID)."""


def _coerce(column: str, value: Any) -> Any:
    if column == "id":
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise _NoMatch(value) from None
    return value


def _row_out(record) -> Row:
    row = dict(record)
    if row.get("id") is not None:
        row["id"] = str(row["id"])
    return row


def _affected(status: str) -> int:
    # asyncpg returns e.g. "UPDATE 1" / "DELETE 0"
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresStore(RemoteStore):
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(
        cls, database_url: str, min_size: int = 2, max_size: int = 10
    ) -> "PostgresStore":
        pool = await db.create_pool(database_url, min_size=min_size, max_size=max_size)
        return cls(pool)

    @staticmethod
    def _where(filters: Sequence[Filter], args: list) -> str:
        clauses = []
        for f in filters:
            args.append(_coerce(f.column, f.value))
            clauses.append(f"{f.column} {OPERATORS[f.op]} ${len(args)}")
        return " AND ".join(clauses) if clauses else "TRUE"

    async def _run(self, method: str, query: str, args: list):
        try:
            async with self.pool.acquire() as conn:
                return await getattr(conn, method)(query, *args)
        except _DRIVER_ERRORS as e:
            logger.error(f"Database call failed: {e}")
            raise RemoteFailure(f"Database call failed: {e}", cause=e) from e

    async def select(
        self,
        table: str,
        filters: Sequence[Filter],
        order: Optional[Sequence[Order]] = None,
    ) -> List[Row]:
        check_filters(table, filters)
        order = list(order or [])
        check_columns(table, [o.column for o in order])

        args: list = []
        try:
            where = self._where(filters, args)
        except _NoMatch:
            return []

        query = f"SELECT * FROM {table} WHERE {where}"
        if order:
            query += " ORDER BY " + ", ".join(
                f"{o.column} {'ASC' if o.ascending else 'DESC'}" for o in order
            )

        records = await self._run("fetch", query, args)
        return [_row_out(r) for r in records]

    async def insert(self, table: str, row: Row) -> Row:
        self._validate_insert(table, row)
        columns = list(row.keys())
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        record = await self._run("fetchrow", query, [row[c] for c in columns])
        if record is None:
            raise RemoteFailure(f"Insert into {table} returned no row")
        return _row_out(record)

    async def update(
        self, table: str, row_id: str, patch: Row, filters: Sequence[Filter]
    ) -> int:
        self._validate_write(table, patch, filters)
        if not patch:
            return 0

        args: list = []
        assignments = []
        for column, value in patch.items():
            args.append(value)
            assignments.append(f"{column} = ${len(args)}")
        try:
            where = self._where([Filter("id", row_id), *filters], args)
        except _NoMatch:
            return 0

        query = f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}"
        return _affected(await self._run("execute", query, args))

    async def delete(self, table: str, row_id: str, filters: Sequence[Filter]) -> int:
        check_filters(table, filters)
        args: list = []
        try:
            where = self._where([Filter("id", row_id), *filters], args)
        except _NoMatch:
            return 0

        query = f"DELETE FROM {table} WHERE {where}"
        return _affected(await self._run("execute", query, args))

    async def health_check(self) -> dict:
        return await db.health_check(self.pool)

    async def close(self) -> None:
        await db.close_pool(self.pool)
