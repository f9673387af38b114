"""
Exception hierarchy for Astra.

- AstraError (base)
  ├── ValidationError       bad user input, raised before any remote call
  │   ├── EmptyTaskContent
  │   ├── InvalidDate
  │   └── MalformedCommand
  ├── RemoteFailure         store or completion provider failed
  │   └── UnknownStatusError
  └── AuthorizationGap      no current user / missing owner filter
"""

from typing import Iterable, Optional


class AstraError(Exception):
    """Base exception. `message` is safe to show to the end user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AstraError):
    pass


class EmptyTaskContent(ValidationError):
    def __init__(self, message: str = "Task content must not be empty.") -> None:
        super().__init__(message)


class InvalidDate(ValidationError):
    def __init__(
        self,
        value: str = "",
        message: str = "Invalid date format. Please use YYYY-MM-DD format.",
    ) -> None:
        super().__init__(message)
        self.value = value


class MalformedCommand(ValidationError):
    def __init__(
        self,
        message: str = 'Invalid command format. Please use: schedule on YYYY-MM-DD "Event Title"',
    ) -> None:
        super().__init__(message)


class RemoteFailure(AstraError):
    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class UnknownStatusError(RemoteFailure):
    """Rows came back with a status outside todo/inProgress/done."""

    def __init__(self, row_ids: Iterable[str], statuses: Iterable[str]) -> None:
        self.row_ids = list(row_ids)
        self.statuses = sorted(set(statuses))
        super().__init__(
            f"Unknown task status {self.statuses} on rows {self.row_ids}"
        )


class AuthorizationGap(AstraError):
    def __init__(self, message: str = "Please sign in to use commands.") -> None:
        super().__init__(message)
