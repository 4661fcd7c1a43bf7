from __future__ import annotations

import queue
import threading
import time
from typing import Optional, Tuple

from ..scheduling.ports import BackgroundTaskPort, LoggerPort, Task


class ThreadedTaskQueue(BackgroundTaskPort):
    """
    Runs enqueued tasks on a daemon consumer thread.

    A failing task is logged and dropped; it never reaches whoever enqueued it.
    Lambda freezes the process once the handler returns, so callers should
    ``join()`` before returning.
    """

    def __init__(self, logger: LoggerPort, name: str = "datepoll-tasks") -> None:
        self.logger = logger
        self._queue: "queue.Queue[Optional[Tuple[str, Task]]]" = queue.Queue()
        self._thread = threading.Thread(target=self._consume, name=name, daemon=True)
        self._thread.start()

    def enqueue(self, task: Task, name: str = "task") -> None:
        self._queue.put((name, task))

    def _consume(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is None:
                    return
                name, task = entry
                try:
                    task()
                except Exception as e:
                    self.logger.error("background task failed", e, task=name)
            finally:
                self._queue.task_done()

    def join(self, timeout: Optional[float] = None) -> bool:
        if timeout is None:
            self._queue.join()
            return True
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def stop(self) -> None:
        self._queue.put(None)
        self._thread.join()


class InlineTaskQueue(BackgroundTaskPort):
    """Runs each task immediately in the caller's thread, still isolating its failures."""

    def __init__(self, logger: LoggerPort) -> None:
        self.logger = logger

    def enqueue(self, task: Task, name: str = "task") -> None:
        try:
            task()
        except Exception as e:
            self.logger.error("background task failed", e, task=name)
