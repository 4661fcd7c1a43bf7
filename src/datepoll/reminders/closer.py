from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..scheduling.errors import RepositoryError
from ..scheduling.models import Schedule
from ..scheduling.ports import BackgroundTaskPort, LoggerPort, NotificationPort
from ..scheduling.store import ScheduleRepository


@dataclass
class ClosureReport:
    closed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    notify_failures: List[str] = field(default_factory=list)


class ScheduleCloser:
    """
    Closes schedules whose deadline has passed.

    The closed status is persisted before any notification is attempted.
    Notification failures are logged and never undo the closure.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        notifier: NotificationPort,
        logger: LoggerPort,
        tasks: Optional[BackgroundTaskPort] = None,
    ) -> None:
        self.schedules = schedules
        self.notifier = notifier
        self.logger = logger
        self.tasks = tasks

    def close_all(self, schedules: List[Schedule]) -> ClosureReport:
        report = ClosureReport()
        for schedule in schedules:
            self.close_one(schedule, report)
        self.logger.info(
            "closures completed",
            closed=len(report.closed),
            skipped=len(report.skipped),
            failed=len(report.failed),
            notify_failures=len(report.notify_failures),
        )
        return report

    def close_one(self, schedule: Schedule, report: ClosureReport) -> None:
        try:
            current = self.schedules.find_by_id(schedule.id, schedule.guild_id)
            if current is None or current.is_closed():
                # another cycle (or a person) got there first
                report.skipped.append(schedule.id)
                return
            current.close()
            self.schedules.save(current)
        except RepositoryError as e:
            report.failed.append(schedule.id)
            self.logger.error("failed to close schedule", e, schedule_id=schedule.id)
            return

        report.closed.append(current.id)
        self.logger.info("schedule closed", schedule_id=current.id, guild_id=current.guild_id)

        self._notify(
            "summary",
            lambda: self.notifier.send_summary_message(current.id, current.guild_id),
            current,
            report,
        )
        self._notify("closure_notice", lambda: self.notifier.send_closure_notice(current), current, report)

    def _notify(
        self,
        kind: str,
        send: Callable[[], None],
        schedule: Schedule,
        report: ClosureReport,
    ) -> None:
        if self.tasks is not None:
            self.tasks.enqueue(send, name=f"{kind}:{schedule.id}")
            return
        try:
            send()
        except Exception as e:
            report.notify_failures.append(schedule.id)
            self.logger.error(f"failed to send {kind}", e, schedule_id=schedule.id)
