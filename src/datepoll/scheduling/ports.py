from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import Schedule

Task = Callable[[], None]


class NotificationPort(ABC):
    """Outbound notifications. Every method may raise; callers catch and continue."""

    @abstractmethod
    def send_deadline_reminder(self, schedule: Schedule, message_text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_summary_message(self, schedule_id: str, guild_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_closure_notice(self, schedule: Schedule) -> None:
        raise NotImplementedError


class EnvironmentPort(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def get_optional(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.get(key)
        return value if value else default

    def get_required(self, key: str) -> str:
        value = self.get(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    def get_int(self, key: str, default: int, minimum: int, maximum: int) -> int:
        raw = self.get_optional(key)
        try:
            value = int(raw) if raw is not None else default
        except ValueError:
            value = default
        return max(minimum, min(maximum, value))


class LoggerPort(ABC):
    @abstractmethod
    def debug(self, message: str, **fields) -> None:
        raise NotImplementedError

    @abstractmethod
    def info(self, message: str, **fields) -> None:
        raise NotImplementedError

    @abstractmethod
    def warn(self, message: str, **fields) -> None:
        raise NotImplementedError

    @abstractmethod
    def error(self, message: str, error: Optional[BaseException] = None, **fields) -> None:
        raise NotImplementedError


class BackgroundTaskPort(ABC):
    @abstractmethod
    def enqueue(self, task: Task, name: str = "task") -> None:
        """Hand ``task`` to a consumer and return immediately."""
        raise NotImplementedError

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued work to finish. Returns False if it did not drain in time."""
        return True
