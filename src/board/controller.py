from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from astra.models import Board, Task, TaskStatus
from auth.session import SessionProvider
from board.repository import TaskRepository
from board.state import BoardState
from board.sync_engine import MoveOutcome, OptimisticSyncEngine
from board.transitions import Loaded, MoveCommand, Reset, TaskAdded, TaskRemoved, locate

logger = logging.getLogger(__name__)


class BoardController:
    """
    One board view: the state a client observes plus the operations on it.

    The controller follows the session it is bound to. A sign-in/sign-out
    starts a new epoch, resets the board and reloads it for the new user;
    responses that belong to an older epoch are dropped instead of applied.
    """

    def __init__(self, repository: TaskRepository, session: SessionProvider):
        self.repository = repository
        self.session = session
        self.state = BoardState()
        self.engine = OptimisticSyncEngine(repository, self.state)

        self.loaded = False
        self._refreshes: Set[asyncio.Task] = set()
        self._unsubscribe = session.on_change(self._on_session_change)

    @property
    def board(self) -> Board:
        return self.state.board

    @property
    def user(self) -> Optional[str]:
        return self.session.current_user()

    def _on_session_change(self, user: Optional[str]) -> None:
        self.state.new_epoch()
        self.state.dispatch(Reset())
        self.loaded = False
        if not user:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.refresh())
        except RuntimeError:
            # No loop running (sync caller); the next refresh() picks it up.
            return
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def refresh(self) -> Board:
        epoch = self.state.epoch
        board = await self.repository.load(self.user)
        if self.state.epoch != epoch:
            logger.debug("Dropping board load from a previous view lifetime")
            return self.state.board
        self.loaded = True
        return self.state.dispatch(Loaded(self.engine.rebase(board)))

    async def create(self, column_id: TaskStatus, content: str) -> Task:
        epoch = self.state.epoch
        task = await self.repository.create(self.user, column_id, content)
        if self.state.epoch == epoch:
            self.state.dispatch(TaskAdded(task))
        return task

    async def delete(self, column_id: TaskStatus, task_id: str) -> bool:
        epoch = self.state.epoch
        removed = await self.repository.delete(self.user, column_id, task_id)
        if self.state.epoch == epoch:
            # The store deletes by id alone; drop the task wherever it sits now.
            position = locate(self.state.board, task_id)
            if position is not None:
                self.state.dispatch(TaskRemoved(position.column, task_id))
        return removed

    async def move(self, command: MoveCommand) -> MoveOutcome:
        return await self.engine.move(self.user, command)

    async def close(self) -> None:
        self._unsubscribe()
        self.state.close()
        for task in list(self._refreshes):
            task.cancel()
        logger.debug("Board view closed")
