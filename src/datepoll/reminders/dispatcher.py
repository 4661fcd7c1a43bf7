from __future__ import annotations

import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..scheduling.errors import RepositoryError
from ..scheduling.ports import LoggerPort, NotificationPort
from ..scheduling.store import ScheduleRepository
from .scanner import DueReminder

MIN_BATCH_SIZE, MAX_BATCH_SIZE, DEFAULT_BATCH_SIZE = 1, 100, 20
MIN_BATCH_DELAY_MS, MAX_BATCH_DELAY_MS, DEFAULT_BATCH_DELAY_MS = 0, 10_000, 100
MIN_TIMEOUT_S, MAX_TIMEOUT_S, DEFAULT_TIMEOUT_S = 1.0, 60.0, 10.0

# Older records carry a single "reminder sent" boolean, which meant the 8h reminder.
LEGACY_REMINDER_TOKEN = "8h"


def _clamp(value, lo, hi):
    return max(lo, min(hi, value))


class KeyedLock:
    """One lock per key, so writes for the same schedule never interleave."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


@dataclass
class DispatchReport:
    sent: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    timed_out: List[Tuple[str, str]] = field(default_factory=list)
    mark_failures: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sent) + len(self.failed) + len(self.timed_out)


class ReminderDispatcher:
    """
    Sends due reminders in fixed-size batches and records each token only
    after its send succeeded.

    Sends inside a batch run concurrently. Each one is bounded by
    ``timeout_seconds``; a send that misses it counts as failed and is not
    recorded even if it completes later, so the next cycle retries it.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        notifier: NotificationPort,
        logger: LoggerPort,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        timeout_seconds: float = DEFAULT_TIMEOUT_S,
        locks: Optional[KeyedLock] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.schedules = schedules
        self.notifier = notifier
        self.logger = logger
        self.batch_size = int(_clamp(batch_size, MIN_BATCH_SIZE, MAX_BATCH_SIZE))
        self.batch_delay_ms = int(_clamp(batch_delay_ms, MIN_BATCH_DELAY_MS, MAX_BATCH_DELAY_MS))
        self.timeout_seconds = float(_clamp(timeout_seconds, MIN_TIMEOUT_S, MAX_TIMEOUT_S))
        self.locks = locks or KeyedLock()
        self._sleep = sleep

    def dispatch(self, reminders: List[DueReminder]) -> DispatchReport:
        report = DispatchReport()
        batches = [reminders[i:i + self.batch_size] for i in range(0, len(reminders), self.batch_size)]
        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay_ms:
                self._sleep(self.batch_delay_ms / 1000.0)
            self._run_batch(batch, report)

        self.logger.info(
            "reminders completed",
            sent=len(report.sent),
            failed=len(report.failed),
            timed_out=len(report.timed_out),
            total=report.total,
        )
        return report

    def _send(self, reminder: DueReminder) -> None:
        self.notifier.send_deadline_reminder(reminder.schedule, reminder.message)

    def _run_batch(self, batch: List[DueReminder], report: DispatchReport) -> None:
        succeeded: "OrderedDict[Tuple[str, str], Set[str]]" = OrderedDict()

        # not a context manager: leaving a `with` block would wait on stuck sends
        pool = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="reminder")
        try:
            started = time.monotonic()
            futures = [(reminder, pool.submit(self._send, reminder)) for reminder in batch]
            for reminder, future in futures:
                key = (reminder.schedule_id, reminder.token)
                remaining = max(0.0, started + self.timeout_seconds - time.monotonic())
                try:
                    future.result(timeout=remaining)
                except FutureTimeout:
                    future.cancel()
                    report.timed_out.append(key)
                    self.logger.warn(
                        "reminder send timed out",
                        schedule_id=reminder.schedule_id,
                        token=reminder.token,
                        timeout=self.timeout_seconds,
                    )
                    continue
                except Exception as e:
                    report.failed.append(key)
                    self.logger.error(
                        "reminder send failed",
                        e,
                        schedule_id=reminder.schedule_id,
                        token=reminder.token,
                    )
                    continue
                report.sent.append(key)
                succeeded.setdefault((reminder.schedule_id, reminder.guild_id), set()).add(reminder.token)
                self.logger.info("reminder sent", schedule_id=reminder.schedule_id, token=reminder.token)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        for (schedule_id, guild_id), tokens in succeeded.items():
            try:
                self.mark_sent(schedule_id, guild_id, tokens)
            except RepositoryError as e:
                # the reminder went out but is unrecorded: it will be re-sent next cycle
                report.mark_failures.append(schedule_id)
                self.logger.error(
                    "failed to record reminders",
                    e,
                    schedule_id=schedule_id,
                    tokens=",".join(sorted(tokens)),
                )

    def mark_sent(self, schedule_id: str, guild_id: str, tokens: Set[str]) -> None:
        if not tokens:
            return
        legacy = True if LEGACY_REMINDER_TOKEN in tokens else None
        with self.locks.hold(schedule_id):
            self.schedules.update_reminders(schedule_id, guild_id, set(tokens), legacy)
