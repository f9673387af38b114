from __future__ import annotations

import logging
import operator
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from storage.remote_store import (
    Filter,
    Order,
    RemoteStore,
    Row,
    check_columns,
    check_filters,
    check_table,
)

logger = logging.getLogger(__name__)

_COMPARE = {"eq": operator.eq, "gte": operator.ge, "lte": operator.le}


def _matches(row: Row, filters: Sequence[Filter]) -> bool:
    for f in filters:
        value = row.get(f.column)
        if value is None:
            return False
        if f.column == "id" or f.column == "user_id":
            value, expected = str(value), str(f.value)
        else:
            expected = f.value
        if not _COMPARE[f.op](value, expected):
            return False
    return True


class InMemoryStore(RemoteStore):
    """
    Process-local store with the same contract as PostgresStore.

    Used for tests and for running the API without a database
    (STORE_BACKEND=memory). Data is lost on restart.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._last_ts: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _table(self, table: str) -> Dict[str, Row]:
        check_table(table)
        return self._tables.setdefault(table, {})

    async def select(
        self,
        table: str,
        filters: Sequence[Filter],
        order: Optional[Sequence[Order]] = None,
    ) -> List[Row]:
        check_filters(table, filters)
        rows = [dict(r) for r in self._table(table).values() if _matches(r, filters)]

        # Stable sorts applied last-key-first give a multi-key ordering.
        for o in reversed(list(order or [])):
            check_columns(table, [o.column])
            rows.sort(
                key=lambda r: (r.get(o.column) is None, r.get(o.column)),
                reverse=not o.ascending,
            )
        return rows

    async def insert(self, table: str, row: Row) -> Row:
        self._validate_insert(table, row)
        stored = dict(row)
        stored["id"] = str(uuid.uuid4())
        stored.setdefault("created_at", self._next_timestamp())
        self._table(table)[stored["id"]] = stored
        logger.debug(f"Inserted {table} row {stored['id']}")
        return dict(stored)

    async def update(
        self, table: str, row_id: str, patch: Row, filters: Sequence[Filter]
    ) -> int:
        self._validate_write(table, patch, filters)
        row = self._table(table).get(str(row_id))
        if row is None or not _matches(row, filters):
            return 0
        row.update(patch)
        return 1

    async def delete(self, table: str, row_id: str, filters: Sequence[Filter]) -> int:
        check_filters(table, filters)
        rows = self._table(table)
        row = rows.get(str(row_id))
        if row is None or not _matches(row, filters):
            return 0
        del rows[str(row_id)]
        return 1

    async def health_check(self) -> dict:
        return {
            "status": "healthy",
            "database": "in-memory",
            "rows": {name: len(rows) for name, rows in self._tables.items()},
        }
