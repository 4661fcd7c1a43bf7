from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


class DatepollError(Exception):
    """Base class for every error raised by the scheduling core."""


class ValidationError(DatepollError):
    """Malformed input, rejected before any read or write."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(DatepollError):
    pass


class PermissionDeniedError(DatepollError):
    pass


class RepositoryError(DatepollError):
    """Storage failure. The underlying exception is kept on ``cause``."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class NotificationError(DatepollError):
    pass


class ConcurrencyError(DatepollError):
    # Reserved for version/etag checks on schedule writes; nothing raises it yet.
    pass


@dataclass
class UseCaseResult(Generic[T]):
    success: bool
    value: Optional[T] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, value: Any = None) -> "UseCaseResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, *errors: str) -> "UseCaseResult":
        return cls(success=False, errors=list(errors))
