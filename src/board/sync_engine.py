"""
Optimistic synchronization of task moves.

A move is applied to the local board before the store has confirmed it. The
store then receives a single status update scoped by task id and owner. If
that update fails, the optimistic arrangement is discarded and the board is
reloaded from the store (reconciliation), so the local view converges to the
backend's truth.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional

from astra.errors import AuthorizationGap, RemoteFailure
from astra.models import Board
from board.repository import TaskRepository
from board.state import BoardState
from board.transitions import Loaded, MoveCommand, apply_move, locate

logger = logging.getLogger(__name__)


class MoveOutcome(str, Enum):
    NOOP = "noop"
    CONFIRMED = "confirmed"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"
    STALE = "stale"


def _inverse(command: MoveCommand) -> MoveCommand:
    return MoveCommand(
        task_id=command.task_id,
        source=command.destination,
        destination=command.source,
    )


class OptimisticSyncEngine:
    def __init__(self, repository: TaskRepository, state: BoardState):
        self.repository = repository
        self.state = state

        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        # Moves applied locally but not yet confirmed, in issuance order.
        self._pending: List[MoveCommand] = []
        self._reload_seq = 0
        # Newest reload whose snapshot reached the board.
        self._applied_seq = 0

    def _acquire_lock(self, task_id: str) -> asyncio.Lock:
        self._lock_users[task_id] += 1
        return self._locks.setdefault(task_id, asyncio.Lock())

    def _release_lock(self, task_id: str) -> None:
        self._lock_users[task_id] -= 1
        if self._lock_users[task_id] <= 0:
            self._lock_users.pop(task_id, None)
            self._locks.pop(task_id, None)

    def _discard_pending(self, command: MoveCommand) -> None:
        for i, pending in enumerate(self._pending):
            if pending is command:
                del self._pending[i]
                return

    def rebase(self, board: Board) -> Board:
        """Re-apply moves still in flight on top of an authoritative snapshot."""
        for command in self._pending:
            current = locate(board, command.task_id)
            if current is not None:
                board = apply_move(board, replace(command, source=current))
        return board

    async def move(self, user: Optional[str], command: MoveCommand) -> MoveOutcome:
        if not user:
            raise AuthorizationGap()

        if command.is_noop():
            return MoveOutcome.NOOP

        before = self.state.board
        after = apply_move(before, command)
        if after is before:
            logger.debug(f"Move of task {command.task_id} changed nothing")
            return MoveOutcome.NOOP

        epoch = self.state.epoch
        self.state.replace(after)
        self._pending.append(command)
        logger.info(
            f"Optimistic move of task {command.task_id}: "
            f"{command.source.column.value}[{command.source.index}] -> "
            f"{command.destination.column.value}[{command.destination.index}]"
        )

        lock = self._acquire_lock(command.task_id)
        try:
            async with lock:
                await self.repository.update_status(
                    user, command.task_id, command.destination.column
                )
        except Exception as e:
            self._discard_pending(command)
            logger.warning(f"Error updating task {command.task_id}: {e}")
            outcome = await self._reconcile(user, command, epoch)
            if not isinstance(e, RemoteFailure):
                raise
            return outcome
        finally:
            self._release_lock(command.task_id)

        self._discard_pending(command)
        return MoveOutcome.CONFIRMED

    async def _reconcile(
        self,
        user: str,
        command: MoveCommand,
        epoch: int,
    ) -> MoveOutcome:
        if self.state.epoch != epoch:
            return MoveOutcome.STALE

        self._reload_seq += 1
        seq = self._reload_seq

        try:
            fresh = await self.repository.fetch(user)
        except RemoteFailure as e:
            if self.state.epoch != epoch or seq < self._applied_seq:
                return MoveOutcome.STALE
            logger.error(
                f"Reconciliation failed after move of task {command.task_id}: {e}"
            )
            reverted = apply_move(self.state.board, _inverse(command))
            self.state.replace(
                reverted.model_copy(update={"degraded": True, "error": e.message})
            )
            return MoveOutcome.ROLLED_BACK

        if self.state.epoch != epoch or seq < self._applied_seq:
            logger.debug(f"Dropping superseded reconciliation #{seq}")
            return MoveOutcome.STALE

        self._applied_seq = seq
        self.state.dispatch(Loaded(self.rebase(fresh)))
        logger.info(f"Reconciled board after failed move of task {command.task_id}")
        return MoveOutcome.RECONCILED
