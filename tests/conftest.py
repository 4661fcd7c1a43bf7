from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from datepoll.scheduling.models import Schedule, ScheduleDate, User
from datepoll.scheduling.ports import EnvironmentPort, LoggerPort, NotificationPort
from datepoll.scheduling.store import InMemoryResponseRepository, InMemoryScheduleRepository

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier(NotificationPort):
    def __init__(self, fail_on: Optional[set] = None) -> None:
        self.reminders: List[tuple] = []
        self.summaries: List[tuple] = []
        self.notices: List[str] = []
        self.fail_on = fail_on or set()
        self._lock = threading.Lock()

    def send_deadline_reminder(self, schedule: Schedule, message_text: str) -> None:
        if "reminder" in self.fail_on:
            raise RuntimeError("discord down")
        with self._lock:
            self.reminders.append((schedule.id, message_text))

    def send_summary_message(self, schedule_id: str, guild_id: str) -> None:
        if "summary" in self.fail_on:
            raise RuntimeError("discord down")
        self.summaries.append((schedule_id, guild_id))

    def send_closure_notice(self, schedule: Schedule) -> None:
        if "notice" in self.fail_on:
            raise RuntimeError("discord down")
        self.notices.append(schedule.id)


class DictEnv(EnvironmentPort):
    def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
        self.values = dict(values or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)


class ListLogger(LoggerPort):
    def __init__(self) -> None:
        self.lines: List[tuple] = []

    def debug(self, message: str, **fields) -> None:
        self.lines.append(("DEBUG", message, fields))

    def info(self, message: str, **fields) -> None:
        self.lines.append(("INFO", message, fields))

    def warn(self, message: str, **fields) -> None:
        self.lines.append(("WARN", message, fields))

    def error(self, message: str, error=None, **fields) -> None:
        self.lines.append(("ERROR", message, {**fields, "error": error}))

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [m for lvl, m, _ in self.lines if level is None or lvl == level]


def make_schedule(
    schedule_id: str = "s1",
    deadline: Optional[datetime] = None,
    guild_id: str = "g1",
    **kwargs,
) -> Schedule:
    defaults = dict(
        id=schedule_id,
        guild_id=guild_id,
        channel_id="c1",
        title="Team dinner",
        dates=[
            ScheduleDate(id="d1", datetime="6/10 19:00"),
            ScheduleDate(id="d2", datetime="6/11 19:00"),
            ScheduleDate(id="d3", datetime="6/12 19:00"),
        ],
        created_by=User(id="u-author", username="alice"),
        author_id="u-author",
        deadline=deadline,
    )
    defaults.update(kwargs)
    return Schedule(**defaults)


@pytest.fixture
def schedules() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


@pytest.fixture
def responses() -> InMemoryResponseRepository:
    return InMemoryResponseRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def logger() -> ListLogger:
    return ListLogger()


@pytest.fixture
def env() -> DictEnv:
    return DictEnv({"DISCORD_TOKEN": "bot-token", "DISCORD_APPLICATION_ID": "app-1"})


@pytest.fixture
def hours():
    return lambda n: NOW + timedelta(hours=n)
