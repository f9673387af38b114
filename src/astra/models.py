from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "inProgress"
    DONE = "done"


COLUMN_TITLES = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}

# Display order of the board; never changes at runtime.
COLUMN_ORDER: Tuple[TaskStatus, ...] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    status: TaskStatus
    owner: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "Task":
        return cls(
            id=str(row["id"]),
            content=row["content"],
            status=row["status"],
            owner=str(row["user_id"]),
            created_at=row.get("created_at"),
        )


class Column(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: TaskStatus
    title: str
    tasks: Tuple[Task, ...] = ()

    def task_ids(self) -> list[str]:
        return [t.id for t in self.tasks]


class Board(BaseModel):
    """
    Immutable snapshot of the three columns.

    `degraded` is set when the snapshot was produced after a failed read, so
    callers can tell "no tasks" from "could not load tasks".
    """
    model_config = ConfigDict(frozen=True)

    columns: Tuple[Column, ...]
    degraded: bool = False
    error: Optional[str] = None

    def column(self, column_id: TaskStatus) -> Column:
        for col in self.columns:
            if col.id == column_id:
                return col
        raise KeyError(column_id)

    def all_task_ids(self) -> list[str]:
        return [t.id for col in self.columns for t in col.tasks]


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(..., min_length=1)
    date: datetime
    owner: str
    created_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @classmethod
    def from_row(cls, row: dict) -> "Event":
        return cls(
            id=str(row["id"]),
            title=row["title"],
            date=row["date"],
            owner=str(row["user_id"]),
            created_at=row.get("created_at"),
        )


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    text: str
    is_user: bool
    owner: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def role(self) -> str:
        return "user" if self.is_user else "assistant"

    @classmethod
    def from_row(cls, row: dict) -> "ChatMessage":
        return cls(
            id=str(row["id"]),
            text=row["message"],
            is_user=bool(row["is_user"]),
            owner=str(row["user_id"]),
            created_at=row.get("created_at"),
        )
