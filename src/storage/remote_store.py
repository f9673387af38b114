"""
Remote store adapter interface.

Every component that touches persisted data receives a RemoteStore instance
explicitly (PostgresStore in production, InMemoryStore in tests and local
development). Rows travel as plain dicts using the database column names.

Owner scoping is enforced here, at the query boundary: any call against an
owned table must carry an equality filter on `user_id` (or, for insert, a
`user_id` value in the row). Calls without it raise AuthorizationGap before
anything reaches the backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from astra.errors import AuthorizationGap

OWNER_COLUMN = "user_id"

SCHEMA: Dict[str, FrozenSet[str]] = {
    "tasks": frozenset({"id", "user_id", "content", "status", "created_at"}),
    "events": frozenset({"id", "user_id", "title", "date", "created_at"}),
    "chat_history": frozenset({"id", "user_id", "message", "is_user", "created_at"}),
}

OWNED_TABLES = frozenset(SCHEMA)

OPERATORS = {"eq": "=", "gte": ">=", "lte": "<="}

Row = Dict[str, Any]


@dataclass(frozen=True)
class Filter:
    column: str
    value: Any
    op: str = "eq"


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True


def owner_filter(user_id: str) -> Filter:
    return Filter(OWNER_COLUMN, user_id)


def check_table(table: str) -> FrozenSet[str]:
    try:
        return SCHEMA[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table!r}") from None


def check_columns(table: str, columns) -> None:
    known = check_table(table)
    unknown = [c for c in columns if c not in known]
    if unknown:
        raise ValueError(f"Unknown columns for {table}: {unknown}")


def check_filters(table: str, filters: Sequence[Filter]) -> None:
    check_columns(table, [f.column for f in filters])
    for f in filters:
        if f.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {f.op!r}")

    if table in OWNED_TABLES and not any(
        f.column == OWNER_COLUMN and f.op == "eq" and f.value for f in filters
    ):
        raise AuthorizationGap(f"Missing owner filter for table {table!r}")


class RemoteStore(ABC):
    """Typed CRUD against the backend; all failures surface as RemoteFailure."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter],
        order: Optional[Sequence[Order]] = None,
    ) -> List[Row]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it with store-assigned `id` and `created_at`."""
        raise NotImplementedError

    @abstractmethod
    async def update(
        self, table: str, row_id: str, patch: Row, filters: Sequence[Filter]
    ) -> int:
        """Return the number of rows changed."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, table: str, row_id: str, filters: Sequence[Filter]) -> int:
        """Return the number of rows removed."""
        raise NotImplementedError

    async def health_check(self) -> dict:
        return {"status": "healthy"}

    async def close(self) -> None:
        return None

    @staticmethod
    def _validate_insert(table: str, row: Row) -> None:
        check_columns(table, row.keys())
        if table in OWNED_TABLES and not row.get(OWNER_COLUMN):
            raise AuthorizationGap(f"Missing owner for insert into {table!r}")

    @staticmethod
    def _validate_write(table: str, patch: Row, filters: Sequence[Filter]) -> None:
        check_filters(table, filters)
        check_columns(table, patch.keys())
        if "id" in patch or OWNER_COLUMN in patch:
            raise ValueError("Row id and owner are immutable")
