from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from .errors import ValidationError
from .timings import DEFAULT_REMINDER_MENTIONS, DEFAULT_REMINDER_TIMINGS

MAX_COMMENT_LENGTH = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class ScheduleStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ResponseStatus(str, Enum):
    OK = "ok"
    MAYBE = "maybe"
    NG = "ng"

    @classmethod
    def from_legacy(cls, value: str) -> "ResponseStatus":
        """Normalize canonical and legacy status tokens into a ResponseStatus."""
        status = _LEGACY_STATUS_TABLE.get((value or "").strip().lower())
        if status is None:
            raise ValidationError(f"Unknown response status: {value!r}")
        return status

    @property
    def emoji(self) -> str:
        return {"ok": "○", "maybe": "△", "ng": "×"}[self.value]


_LEGACY_STATUS_TABLE: Dict[str, ResponseStatus] = {
    "ok": ResponseStatus.OK,
    "yes": ResponseStatus.OK,
    "available": ResponseStatus.OK,
    "maybe": ResponseStatus.MAYBE,
    "ng": ResponseStatus.NG,
    "no": ResponseStatus.NG,
    "unavailable": ResponseStatus.NG,
}


@dataclass(frozen=True)
class ScheduleDate:
    """A candidate date. ``datetime`` is a free-text label, not a parsed instant."""
    id: str
    datetime: str


@dataclass(frozen=True)
class User:
    id: str
    username: str
    display_name: Optional[str] = None


@dataclass
class Schedule:
    id: str
    guild_id: str
    channel_id: str
    title: str
    dates: List[ScheduleDate]
    created_by: User
    author_id: str
    message_id: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    reminder_timings: List[str] = field(default_factory=lambda: list(DEFAULT_REMINDER_TIMINGS))
    reminder_mentions: List[str] = field(default_factory=lambda: list(DEFAULT_REMINDER_MENTIONS))
    reminders_sent: Set[str] = field(default_factory=set)
    status: ScheduleStatus = ScheduleStatus.OPEN
    total_responses: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # set by change_deadline; tells the next save to replace the stored reminder set
    reminders_reset: bool = field(default=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        missing = [
            name
            for name, value in (
                ("id", self.id),
                ("guild_id", self.guild_id),
                ("channel_id", self.channel_id),
                ("title", self.title),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValidationError("Schedule is missing required fields: " + ", ".join(missing))
        if not self.dates:
            raise ValidationError("Schedule must have at least one date")
        if self.deadline is not None:
            self.deadline = to_utc(self.deadline)
        self.reminders_sent = set(self.reminders_sent or ())

    def is_open(self) -> bool:
        return self.status == ScheduleStatus.OPEN

    def is_closed(self) -> bool:
        return self.status == ScheduleStatus.CLOSED

    def is_deadline_passed(self, now: Optional[datetime] = None) -> bool:
        if self.deadline is None:
            return False
        return to_utc(now or utcnow()) >= self.deadline

    def can_be_edited_by(self, user_id: str) -> bool:
        return self.author_id == user_id

    def date_ids(self) -> List[str]:
        return [d.id for d in self.dates]

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def close(self) -> None:
        self.status = ScheduleStatus.CLOSED
        self._touch()

    def reopen(self) -> None:
        # remindersSent is left as-is: reopening does not re-arm past reminders
        self.status = ScheduleStatus.OPEN
        self._touch()

    def change_deadline(self, deadline: Optional[datetime]) -> bool:
        """Set a new deadline. Returns True when the value actually changed.

        Any change (added, removed or moved) empties ``reminders_sent``.
        """
        new_deadline = to_utc(deadline) if deadline is not None else None
        if new_deadline == self.deadline:
            return False
        self.deadline = new_deadline
        self.reminders_sent = set()
        self.reminders_reset = True
        self._touch()
        return True

    def rename(self, title: str) -> None:
        if not (title or "").strip():
            raise ValidationError("Title cannot be empty")
        self.title = title
        self._touch()

    def describe(self, description: Optional[str]) -> None:
        self.description = description or None
        self._touch()

    def replace_dates(self, dates: List[ScheduleDate]) -> List[str]:
        """Replace candidate dates, returning the ids that were dropped."""
        if not dates:
            raise ValidationError("Schedule must have at least one date")
        ids = [d.id for d in dates]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate date ids")
        removed = [d.id for d in self.dates if d.id not in set(ids)]
        self.dates = list(dates)
        self._touch()
        return removed

    def configure_reminders(
        self,
        timings: Optional[List[str]] = None,
        mentions: Optional[List[str]] = None,
    ) -> None:
        if timings is not None:
            self.reminder_timings = list(timings)
        if mentions is not None:
            self.reminder_mentions = list(mentions)
        self._touch()

    def mark_reminders_sent(self, tokens: Set[str]) -> None:
        self.reminders_sent |= set(tokens)


@dataclass
class Response:
    schedule_id: str
    user_id: str
    username: str
    date_statuses: Dict[str, ResponseStatus] = field(default_factory=dict)
    display_name: Optional[str] = None
    comment: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    def status_for(self, date_id: str) -> Optional[ResponseStatus]:
        return self.date_statuses.get(date_id)

    def prune(self, date_ids: List[str]) -> bool:
        """Drop statuses for the given date ids. Returns True when anything was removed."""
        stale = [d for d in date_ids if d in self.date_statuses]
        for date_id in stale:
            del self.date_statuses[date_id]
        if stale:
            self.updated_at = utcnow()
        return bool(stale)
