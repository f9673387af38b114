import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from api.dependencies import get_board_registry, get_current_user
from api.metrics import RECONCILIATIONS_TOTAL, TASK_MOVES_TOTAL, observe
from api.state import BoardRegistry
from astra.models import TaskStatus
from board.controller import BoardController
from board.sync_engine import MoveOutcome
from board.transitions import MoveCommand, Position

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateTaskIn(BaseModel):
    column: TaskStatus = TaskStatus.TODO
    content: str


class MoveRequestIn(BaseModel):
    task_id: str
    source_column: TaskStatus
    source_index: int = Field(..., ge=0)
    # Both omitted when the drop was cancelled.
    destination_column: Optional[TaskStatus] = None
    destination_index: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def destination_is_complete(self) -> "MoveRequestIn":
        if (self.destination_column is None) != (self.destination_index is None):
            raise ValueError(
                "destination_column and destination_index must be given together"
            )
        return self

    def to_command(self) -> MoveCommand:
        destination = None
        if self.destination_column is not None:
            destination = Position(self.destination_column, self.destination_index)
        return MoveCommand(
            task_id=self.task_id,
            source=Position(self.source_column, self.source_index),
            destination=destination,
        )


async def _loaded(registry: BoardRegistry, user: str) -> BoardController:
    controller = await registry.get(user)
    if not controller.loaded:
        await controller.refresh()
    return controller


@router.get("/board")
async def get_board(
    user: str = Depends(get_current_user),
    registry: BoardRegistry = Depends(get_board_registry),
) -> dict:
    """Current board for the user, reloaded from the store."""
    start = time.time()
    controller = await registry.get(user)
    board = await controller.refresh()
    observe("/board", "degraded" if board.degraded else "ok", start, time.time())
    return board.model_dump(mode="json")


@router.post("/board/tasks", status_code=201)
async def create_task(
    payload: CreateTaskIn,
    user: str = Depends(get_current_user),
    registry: BoardRegistry = Depends(get_board_registry),
) -> dict:
    start = time.time()
    controller = await _loaded(registry, user)
    task = await controller.create(payload.column, payload.content)
    observe("/board/tasks", "created", start, time.time())
    return {"status": "created", "task": task.model_dump(mode="json")}


@router.delete("/board/tasks/{column}/{task_id}")
async def delete_task(
    column: TaskStatus,
    task_id: str,
    user: str = Depends(get_current_user),
    registry: BoardRegistry = Depends(get_board_registry),
) -> dict:
    controller = await _loaded(registry, user)
    removed = await controller.delete(column, task_id)
    return {"status": "deleted" if removed else "ignored"}


@router.post("/board/move")
async def move_task(
    payload: MoveRequestIn,
    user: str = Depends(get_current_user),
    registry: BoardRegistry = Depends(get_board_registry),
) -> dict:
    """
    Handle drag-and-drop 'move' events.

    The local board is updated before the store confirms; on failure the
    response carries the reconciled board instead of the requested arrangement.
    """
    start = time.time()
    logger.info(f"Move request: {payload}")

    controller = await _loaded(registry, user)
    outcome = await controller.move(payload.to_command())

    try:
        TASK_MOVES_TOTAL.labels(outcome=outcome.value).inc()
        if outcome in (MoveOutcome.RECONCILED, MoveOutcome.ROLLED_BACK):
            RECONCILIATIONS_TOTAL.inc()
    except Exception:
        pass
    observe("/board/move", outcome.value, start, time.time())

    return {
        "status": outcome.value,
        "board": controller.board.model_dump(mode="json"),
    }
