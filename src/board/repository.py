from __future__ import annotations

import logging
from typing import Optional

from astra.errors import (
    AuthorizationGap,
    EmptyTaskContent,
    RemoteFailure,
    UnknownStatusError,
)
from astra.models import Board, Task, TaskStatus
from board.transitions import empty_board, group_tasks
from storage.remote_store import Filter, Order, RemoteStore, owner_filter

logger = logging.getLogger(__name__)

TABLE = "tasks"
_KNOWN_STATUSES = {s.value for s in TaskStatus}


class TaskRepository:
    """Task CRUD for one store, every call scoped to the owning user."""

    def __init__(self, store: RemoteStore):
        self.store = store

    async def fetch(self, user: str) -> Board:
        """
        Authoritative read of the user's board.

        Raises RemoteFailure when the store fails and UnknownStatusError when a
        row carries a status outside the three known columns.
        """
        rows = await self.store.select(
            TABLE,
            [owner_filter(user)],
            order=[Order("created_at"), Order("id")],
        )

        bad = [r for r in rows if r.get("status") not in _KNOWN_STATUSES]
        if bad:
            raise UnknownStatusError(
                [str(r.get("id")) for r in bad],
                [str(r.get("status")) for r in bad],
            )

        return group_tasks(Task.from_row(r) for r in rows)

    async def load(self, user: Optional[str]) -> Board:
        """Board for `user`; empty when signed out, degraded when the read fails."""
        if not user:
            return empty_board()

        try:
            return await self.fetch(user)
        except UnknownStatusError:
            raise
        except RemoteFailure as e:
            logger.error(f"Error fetching tasks for user {user}: {e}")
            return empty_board(degraded=True, error=e.message)

    async def create(
        self, user: Optional[str], column_id: TaskStatus, content: str
    ) -> Task:
        if not content or not content.strip():
            raise EmptyTaskContent()
        if not user:
            raise AuthorizationGap()

        row = await self.store.insert(
            TABLE,
            {"content": content, "status": TaskStatus(column_id).value, "user_id": user},
        )
        task = Task.from_row(row)
        logger.info(f"Created task {task.id} in {task.status.value} for user {user}")
        return task

    async def delete(
        self, user: Optional[str], column_id: TaskStatus, task_id: str
    ) -> bool:
        """Delete the task; returns False (no-op) when it is not the user's."""
        if not user:
            raise AuthorizationGap()

        removed = await self.store.delete(TABLE, task_id, [owner_filter(user)])
        if removed:
            logger.info(f"Deleted task {task_id} from {column_id} for user {user}")
        else:
            logger.debug(f"Delete of task {task_id} matched nothing for user {user}")
        return bool(removed)

    async def update_status(
        self, user: str, task_id: str, status: TaskStatus
    ) -> None:
        changed = await self.store.update(
            TABLE,
            task_id,
            {"status": TaskStatus(status).value},
            [Filter("id", task_id), owner_filter(user)],
        )
        if not changed:
            raise RemoteFailure(f"Task {task_id} not found for user {user}")
