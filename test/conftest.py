import pytest

from astra.errors import RemoteFailure
from storage.memory_store import InMemoryStore


class FlakyStore(InMemoryStore):
    """InMemoryStore that fails selected operations on demand."""

    def __init__(self):
        super().__init__()
        self.fail_on = set()
        self.calls = []

    def _maybe_fail(self, op: str, table: str):
        self.calls.append((op, table))
        if op in self.fail_on or (op, table) in self.fail_on:
            raise RemoteFailure(f"{op} on {table} unavailable")

    async def select(self, table, filters, order=None):
        self._maybe_fail("select", table)
        return await super().select(table, filters, order)

    async def insert(self, table, row):
        self._maybe_fail("insert", table)
        return await super().insert(table, row)

    async def update(self, table, row_id, patch, filters):
        self._maybe_fail("update", table)
        return await super().update(table, row_id, patch, filters)

    async def delete(self, table, row_id, filters):
        self._maybe_fail("delete", table)
        return await super().delete(table, row_id, filters)


class FakeCompletionProvider:
    def __init__(self, response_text: str = "ok", error: Exception = None):
        self._response_text = response_text
        self._error = error
        self.calls = []

    async def complete(self, messages):
        self.calls.append(list(messages))
        if self._error is not None:
            raise self._error
        return self._response_text


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def fake_completion_factory():
    def _make(response_text: str = "ok", error: Exception = None):
        return FakeCompletionProvider(response_text, error)
    return _make
