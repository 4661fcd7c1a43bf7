from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from .models import Response, Schedule, to_utc


class ScheduleRepository(ABC):
    @abstractmethod
    def save(self, schedule: Schedule) -> None:
        """
        Upsert by id. ``reminders_sent`` is merged into the stored set, so a
        stale copy cannot drop tokens recorded since it was read. After a
        deadline change (``reminders_reset``) the stored set is replaced.
        """
        raise NotImplementedError

    @abstractmethod
    def find_by_id(self, schedule_id: str, guild_id: str) -> Optional[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def find_by_channel(self, channel_id: str, guild_id: str, limit: int = 100) -> List[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def find_by_deadline_range(
        self,
        start: datetime,
        end: datetime,
        guild_id: Optional[str] = None,
    ) -> List[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def find_by_message_id(self, message_id: str, guild_id: str) -> Optional[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def count_by_guild(self, guild_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def delete(self, schedule_id: str, guild_id: str) -> None:
        """Remove the schedule only. Dependent responses are the caller's job."""
        raise NotImplementedError

    @abstractmethod
    def update_reminders(
        self,
        schedule_id: str,
        guild_id: str,
        reminders_sent: Set[str],
        legacy_sent: Optional[bool] = None,
    ) -> None:
        """Merge ``reminders_sent`` into the stored set. Never a blind overwrite."""
        raise NotImplementedError


class ResponseRepository(ABC):
    @abstractmethod
    def save(self, response: Response, guild_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def find_by_user(self, schedule_id: str, user_id: str, guild_id: str) -> Optional[Response]:
        raise NotImplementedError

    @abstractmethod
    def find_by_schedule_id(self, schedule_id: str, guild_id: str) -> List[Response]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, schedule_id: str, user_id: str, guild_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_by_schedule(self, schedule_id: str, guild_id: str) -> None:
        raise NotImplementedError


class InMemoryScheduleRepository(ScheduleRepository):
    def __init__(self) -> None:
        self._db: Dict[Tuple[str, str], Schedule] = {}
        self._lock = threading.Lock()

    def save(self, schedule: Schedule) -> None:
        key = (schedule.guild_id, schedule.id)
        stored_copy = copy.deepcopy(schedule)
        stored_copy.reminders_reset = False
        with self._lock:
            previous = self._db.get(key)
            if previous is not None and not schedule.reminders_reset:
                stored_copy.reminders_sent |= previous.reminders_sent
            self._db[key] = stored_copy
        schedule.reminders_reset = False

    def find_by_id(self, schedule_id: str, guild_id: str) -> Optional[Schedule]:
        with self._lock:
            found = self._db.get((guild_id, schedule_id))
            return copy.deepcopy(found) if found else None

    def find_by_channel(self, channel_id: str, guild_id: str, limit: int = 100) -> List[Schedule]:
        with self._lock:
            rows = [
                copy.deepcopy(s)
                for (g, _), s in self._db.items()
                if g == guild_id and s.channel_id == channel_id
            ]
        rows.sort(key=lambda s: s.created_at, reverse=True)
        return rows[:limit]

    def find_by_deadline_range(
        self,
        start: datetime,
        end: datetime,
        guild_id: Optional[str] = None,
    ) -> List[Schedule]:
        start, end = to_utc(start), to_utc(end)
        with self._lock:
            rows = [
                copy.deepcopy(s)
                for s in self._db.values()
                if s.deadline is not None
                and start <= s.deadline <= end
                and (guild_id is None or s.guild_id == guild_id)
            ]
        rows.sort(key=lambda s: s.deadline)
        return rows

    def find_by_message_id(self, message_id: str, guild_id: str) -> Optional[Schedule]:
        with self._lock:
            for (g, _), s in self._db.items():
                if g == guild_id and s.message_id == message_id:
                    return copy.deepcopy(s)
        return None

    def count_by_guild(self, guild_id: str) -> int:
        with self._lock:
            return sum(1 for (g, _) in self._db if g == guild_id)

    def delete(self, schedule_id: str, guild_id: str) -> None:
        with self._lock:
            self._db.pop((guild_id, schedule_id), None)

    def update_reminders(
        self,
        schedule_id: str,
        guild_id: str,
        reminders_sent: Set[str],
        legacy_sent: Optional[bool] = None,
    ) -> None:
        with self._lock:
            stored = self._db.get((guild_id, schedule_id))
            if stored is None:
                return
            stored.mark_reminders_sent(set(reminders_sent))


class InMemoryResponseRepository(ResponseRepository):
    def __init__(self) -> None:
        self._db: Dict[Tuple[str, str, str], Response] = {}
        self._lock = threading.Lock()

    def save(self, response: Response, guild_id: str) -> None:
        with self._lock:
            self._db[(guild_id, response.schedule_id, response.user_id)] = copy.deepcopy(response)

    def find_by_user(self, schedule_id: str, user_id: str, guild_id: str) -> Optional[Response]:
        with self._lock:
            found = self._db.get((guild_id, schedule_id, user_id))
            return copy.deepcopy(found) if found else None

    def find_by_schedule_id(self, schedule_id: str, guild_id: str) -> List[Response]:
        with self._lock:
            rows = [
                copy.deepcopy(r)
                for (g, s, _), r in self._db.items()
                if g == guild_id and s == schedule_id
            ]
        rows.sort(key=lambda r: r.updated_at)
        return rows

    def delete(self, schedule_id: str, user_id: str, guild_id: str) -> None:
        with self._lock:
            self._db.pop((guild_id, schedule_id, user_id), None)

    def delete_by_schedule(self, schedule_id: str, guild_id: str) -> None:
        with self._lock:
            for key in [k for k in self._db if k[0] == guild_id and k[1] == schedule_id]:
                del self._db[key]
