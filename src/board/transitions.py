"""
Pure state transitions for the task board.

`reduce(board, event)` is the only way a board snapshot changes. It never
mutates its input and returns the very same object for no-op events, so
callers can detect "nothing happened" with an identity check.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from astra.models import COLUMN_ORDER, COLUMN_TITLES, Board, Column, Task, TaskStatus


@dataclass(frozen=True)
class Position:
    column: TaskStatus
    index: int


@dataclass(frozen=True)
class MoveCommand:
    """A drop of `task_id` from `source` to `destination` (None = cancelled)."""

    task_id: str
    source: Position
    destination: Optional[Position]

    def is_noop(self) -> bool:
        return self.destination is None or self.destination == self.source


@dataclass(frozen=True)
class Loaded:
    board: Board


@dataclass(frozen=True)
class TaskAdded:
    task: Task


@dataclass(frozen=True)
class TaskRemoved:
    column: TaskStatus
    task_id: str


@dataclass(frozen=True)
class TaskMoved:
    command: MoveCommand


@dataclass(frozen=True)
class Reset:
    pass


BoardEvent = Union[Loaded, TaskAdded, TaskRemoved, TaskMoved, Reset]


def empty_board(degraded: bool = False, error: Optional[str] = None) -> Board:
    return Board(
        columns=tuple(Column(id=s, title=COLUMN_TITLES[s]) for s in COLUMN_ORDER),
        degraded=degraded,
        error=error,
    )


def group_tasks(tasks: Iterable[Task]) -> Board:
    """Partition tasks into the fixed columns, keeping the given order."""
    buckets = {s: [] for s in COLUMN_ORDER}
    for task in tasks:
        buckets[task.status].append(task)
    return Board(
        columns=tuple(
            Column(id=s, title=COLUMN_TITLES[s], tasks=tuple(buckets[s]))
            for s in COLUMN_ORDER
        )
    )


def _replace_columns(board: Board, changed: dict) -> Board:
    return Board(
        columns=tuple(changed.get(c.id, c) for c in board.columns),
        degraded=board.degraded,
        error=board.error,
    )


def add_task(board: Board, task: Task) -> Board:
    col = board.column(task.status)
    if task.id in col.task_ids():
        return board
    return _replace_columns(
        board, {col.id: col.model_copy(update={"tasks": col.tasks + (task,)})}
    )


def remove_task(board: Board, column_id: TaskStatus, task_id: str) -> Board:
    col = board.column(column_id)
    kept = tuple(t for t in col.tasks if t.id != task_id)
    if len(kept) == len(col.tasks):
        return board
    return _replace_columns(board, {col.id: col.model_copy(update={"tasks": kept})})


def locate(board: Board, task_id: str) -> Optional[Position]:
    for col in board.columns:
        ids = col.task_ids()
        if task_id in ids:
            return Position(col.id, ids.index(task_id))
    return None


def apply_move(board: Board, command: MoveCommand) -> Board:
    """
    Remove the task from its source column and insert it at the destination
    index with its status set to the destination column.

    The task is looked up by id in the source column (the source index is a
    hint from the caller and may be stale if another move landed first).
    A task that is not in the source column leaves the board unchanged.
    """
    if command.is_noop():
        return board

    source = board.column(command.source.column)
    dest_id = command.destination.column

    ids = source.task_ids()
    if command.task_id not in ids:
        return board
    src_index = ids.index(command.task_id)

    moved = source.tasks[src_index]
    if moved.status != dest_id:
        moved = moved.model_copy(update={"status": dest_id})

    remaining = source.tasks[:src_index] + source.tasks[src_index + 1:]

    if dest_id == source.id:
        target = remaining
    else:
        target = board.column(dest_id).tasks

    index = max(0, min(command.destination.index, len(target)))
    inserted = target[:index] + (moved,) + target[index:]

    if dest_id == source.id:
        if inserted == source.tasks:
            return board
        changed = {source.id: source.model_copy(update={"tasks": inserted})}
    else:
        dest = board.column(dest_id)
        changed = {
            source.id: source.model_copy(update={"tasks": remaining}),
            dest.id: dest.model_copy(update={"tasks": inserted}),
        }
    return _replace_columns(board, changed)


def reduce(board: Board, event: BoardEvent) -> Board:
    if isinstance(event, Loaded):
        return event.board
    if isinstance(event, TaskAdded):
        return add_task(board, event.task)
    if isinstance(event, TaskRemoved):
        return remove_task(board, event.column, event.task_id)
    if isinstance(event, TaskMoved):
        return apply_move(board, event.command)
    if isinstance(event, Reset):
        return empty_board()
    raise TypeError(f"Unknown board event: {event!r}")
