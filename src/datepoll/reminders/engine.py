from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..scheduling.models import utcnow
from ..scheduling.ports import BackgroundTaskPort, EnvironmentPort, LoggerPort, NotificationPort
from ..scheduling.store import ScheduleRepository
from .closer import ClosureReport, ScheduleCloser
from .dispatcher import (
    DEFAULT_BATCH_DELAY_MS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_TIMEOUT_S,
    MAX_BATCH_DELAY_MS,
    MAX_BATCH_SIZE,
    MAX_TIMEOUT_S,
    MIN_BATCH_DELAY_MS,
    MIN_BATCH_SIZE,
    MIN_TIMEOUT_S,
    DispatchReport,
    KeyedLock,
    ReminderDispatcher,
)
from .scanner import DeadlineScanner

REQUIRED_CREDENTIALS = ("DISCORD_TOKEN", "DISCORD_APPLICATION_ID")


@dataclass
class CycleReport:
    skipped: bool = False
    skip_reason: Optional[str] = None
    reminders_due: int = 0
    closures_due: int = 0
    scan_failed: int = 0
    dispatch: DispatchReport = field(default_factory=DispatchReport)
    closures: ClosureReport = field(default_factory=ClosureReport)

    def as_dict(self) -> dict:
        if self.skipped:
            return {"ok": True, "skipped": self.skip_reason}
        return {
            "ok": True,
            "reminders_due": self.reminders_due,
            "scan_failed": self.scan_failed,
            "reminders_sent": len(self.dispatch.sent),
            "reminders_failed": len(self.dispatch.failed) + len(self.dispatch.timed_out),
            "closures_due": self.closures_due,
            "closed": len(self.closures.closed),
            "close_failed": len(self.closures.failed),
        }


class DeadlineReminderEngine:
    """One evaluation cycle: scan, send due reminders, then close expired schedules."""

    def __init__(
        self,
        schedules: ScheduleRepository,
        notifier: NotificationPort,
        env: EnvironmentPort,
        logger: LoggerPort,
        tasks: Optional[BackgroundTaskPort] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.schedules = schedules
        self.notifier = notifier
        self.env = env
        self.logger = logger
        self.tasks = tasks
        self.clock = clock
        self.sleep = sleep
        self.locks = KeyedLock()

    def _missing_credentials(self) -> list:
        return [key for key in REQUIRED_CREDENTIALS if not self.env.get_optional(key)]

    def build_dispatcher(self) -> ReminderDispatcher:
        kwargs = {}
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        return ReminderDispatcher(
            self.schedules,
            self.notifier,
            self.logger,
            batch_size=self.env.get_int("REMINDER_BATCH_SIZE", DEFAULT_BATCH_SIZE, MIN_BATCH_SIZE, MAX_BATCH_SIZE),
            batch_delay_ms=self.env.get_int(
                "REMINDER_BATCH_DELAY", DEFAULT_BATCH_DELAY_MS, MIN_BATCH_DELAY_MS, MAX_BATCH_DELAY_MS
            ),
            timeout_seconds=self.env.get_int(
                "NOTIFICATION_TIMEOUT_SECONDS", int(DEFAULT_TIMEOUT_S), int(MIN_TIMEOUT_S), int(MAX_TIMEOUT_S)
            ),
            locks=self.locks,
            **kwargs,
        )

    def build_scanner(self) -> DeadlineScanner:
        return DeadlineScanner(
            self.schedules,
            self.logger,
            lookahead=timedelta(hours=self.env.get_int("REMINDER_LOOKAHEAD_HOURS", 168, 1, 24 * 366)),
            lookback=timedelta(hours=self.env.get_int("CLOSURE_LOOKBACK_HOURS", 168, 1, 24 * 366)),
        )

    def run_cycle(self, guild_id: Optional[str] = None) -> CycleReport:
        missing = self._missing_credentials()
        if missing:
            self.logger.error("missing notification credentials, skipping cycle", missing=",".join(missing))
            return CycleReport(skipped=True, skip_reason="missing_credentials")

        now = self.clock()
        scan = self.build_scanner().scan(now, guild_id)
        report = CycleReport(
            reminders_due=len(scan.reminders),
            closures_due=len(scan.just_closed),
            scan_failed=len(scan.failed),
        )
        self.logger.info(
            "cycle start",
            now=now.isoformat(),
            reminders=report.reminders_due,
            closures=report.closures_due,
        )

        report.dispatch = self.build_dispatcher().dispatch(scan.reminders)
        report.closures = ScheduleCloser(self.schedules, self.notifier, self.logger, self.tasks).close_all(
            scan.just_closed
        )

        if self.tasks is not None and not self.tasks.join(timeout=60):
            self.logger.warn("background tasks still running at end of cycle")
        return report
