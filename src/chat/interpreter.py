"""
Chat command grammar.

    add task <content>
    schedule on YYYY-MM-DD "<title>"

Prefixes are matched case-insensitively and checked in that order. Anything
else is NOT_A_COMMAND and falls through to conversational handling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time
from typing import Union

from astra.errors import EmptyTaskContent, InvalidDate, MalformedCommand

ADD_TASK_PREFIX = "add task "
SCHEDULE_PREFIX = "schedule on "

# Events carry date-only semantics; pin them to midday so a timezone shift on
# display never moves them to a neighbouring day.
EVENT_TIME_OF_DAY = time(12, 0)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class CreateTask:
    content: str


@dataclass(frozen=True)
class ScheduleEvent:
    date: datetime
    title: str


class _NotACommand:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_A_COMMAND"

    def __bool__(self) -> bool:
        return False


NOT_A_COMMAND = _NotACommand()

Command = Union[CreateTask, ScheduleEvent]


def _has_prefix(text: str, prefix: str) -> bool:
    return text[: len(prefix)].lower() == prefix


def parse_event_date(value: str) -> datetime:
    """Strict YYYY-MM-DD parse, normalized to EVENT_TIME_OF_DAY."""
    if not _DATE_RE.match(value):
        raise InvalidDate(value)
    try:
        day = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidDate(value) from None
    return datetime.combine(day, EVENT_TIME_OF_DAY)


def interpret(text: str) -> Union[Command, _NotACommand]:
    """
    Parse one chat line.

    Raises EmptyTaskContent, MalformedCommand or InvalidDate when the line
    starts like a command but does not follow its grammar.
    """
    if _has_prefix(text, ADD_TASK_PREFIX):
        content = text[len(ADD_TASK_PREFIX):]
        if not content.strip():
            raise EmptyTaskContent()
        return CreateTask(content=content)

    if _has_prefix(text, SCHEDULE_PREFIX):
        parts = text[len(SCHEDULE_PREFIX):].split('"')
        if len(parts) < 3:
            raise MalformedCommand()
        date_str, title = parts[0].strip(), parts[1]
        when = parse_event_date(date_str)
        if not title.strip():
            raise MalformedCommand()
        return ScheduleEvent(date=when, title=title)

    return NOT_A_COMMAND
