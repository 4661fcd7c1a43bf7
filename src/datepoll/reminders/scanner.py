from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ..scheduling.models import Schedule, to_utc
from ..scheduling.ports import LoggerPort
from ..scheduling.store import ScheduleRepository
from ..scheduling.timings import MAX_TIMING_OFFSET, effective_timings, parse_timing
from .templates import reminder_text

DEFAULT_LOOKAHEAD = timedelta(days=7)
DEFAULT_LOOKBACK = timedelta(days=7)


@dataclass(frozen=True)
class DueReminder:
    schedule: Schedule
    token: str
    message: str

    @property
    def schedule_id(self) -> str:
        return self.schedule.id

    @property
    def guild_id(self) -> str:
        return self.schedule.guild_id


@dataclass
class ScanResult:
    reminders: List[DueReminder] = field(default_factory=list)
    just_closed: List[Schedule] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def due_tokens(schedule: Schedule, now: datetime) -> List[str]:
    """
    Every reminder token whose trigger instant has passed and that was not
    sent yet, in the schedule's declared order. A long gap between cycles
    returns several tokens at once instead of dropping the earlier ones.
    """
    if schedule.deadline is None or not schedule.is_open():
        return []
    now = to_utc(now)
    if schedule.deadline <= now:
        return []

    out: List[str] = []
    for token in effective_timings(schedule.reminder_timings):
        offset = parse_timing(token)
        if not offset:
            continue
        if token in schedule.reminders_sent or token in out:
            continue
        if now >= schedule.deadline - offset:
            out.append(token)
    return out


def is_just_closed(schedule: Schedule, now: datetime) -> bool:
    return schedule.is_open() and schedule.deadline is not None and schedule.deadline <= to_utc(now)


class DeadlineScanner:
    def __init__(
        self,
        schedules: ScheduleRepository,
        logger: Optional[LoggerPort] = None,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        lookback: timedelta = DEFAULT_LOOKBACK,
    ) -> None:
        self.schedules = schedules
        self.logger = logger
        # never narrower than the longest accepted reminder offset
        self.lookahead = max(lookahead, MAX_TIMING_OFFSET)
        self.lookback = lookback

    def scan(self, now: datetime, guild_id: Optional[str] = None) -> ScanResult:
        now = to_utc(now)
        result = ScanResult()
        candidates = self.schedules.find_by_deadline_range(
            now - self.lookback, now + self.lookahead, guild_id
        )
        for schedule in candidates:
            try:
                self._classify(schedule, now, result)
            except Exception as e:
                result.failed.append(schedule.id)
                if self.logger:
                    self.logger.error("failed to evaluate schedule", e, schedule_id=schedule.id)

        if self.logger:
            self.logger.info(
                "scan complete",
                candidates=len(candidates),
                reminders=len(result.reminders),
                just_closed=len(result.just_closed),
                failed=len(result.failed),
            )
        return result

    def _classify(self, schedule: Schedule, now: datetime, result: ScanResult) -> None:
        if schedule.deadline is None or not schedule.is_open():
            return
        if is_just_closed(schedule, now):
            result.just_closed.append(schedule)
            return
        reminders = [
            DueReminder(schedule=schedule, token=token, message=reminder_text(token))
            for token in due_tokens(schedule, now)
        ]
        result.reminders.extend(reminders)
