from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Union

from .aggregator import ScheduleStatistics, aggregate_responses
from .errors import (
    DatepollError,
    NotFoundError,
    PermissionDeniedError,
    RepositoryError,
    UseCaseResult,
    ValidationError,
)
from .models import (
    MAX_COMMENT_LENGTH,
    Response,
    ResponseStatus,
    Schedule,
    ScheduleDate,
    User,
    to_utc,
    utcnow,
)
from .ports import LoggerPort
from .store import ResponseRepository, ScheduleRepository
from .timings import is_valid_timing


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()

DeadlineInput = Union[datetime, str, None]
DateInput = Union[ScheduleDate, Dict[str, str]]


@dataclass
class ScheduleSummary:
    schedule: Schedule
    responses: List[Response] = field(default_factory=list)
    statistics: Optional[ScheduleStatistics] = None


def parse_deadline(value: DeadlineInput) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return to_utc(value) if value is not None else None
    try:
        return to_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid deadline: {value!r}")


def _coerce_dates(dates: Sequence[DateInput]) -> List[ScheduleDate]:
    out: List[ScheduleDate] = []
    errors: List[str] = []
    for i, d in enumerate(dates or [], start=1):
        if isinstance(d, ScheduleDate):
            date_id, label = d.id, d.datetime
        else:
            date_id, label = (d.get("id") or ""), (d.get("datetime") or "")
        if not date_id.strip():
            errors.append(f"Date {i}: id is required")
        if not label.strip():
            errors.append(f"Date {i}: datetime is required")
        out.append(ScheduleDate(id=date_id, datetime=label))
    if errors:
        raise ValidationError(errors[0], errors)
    return out


def _check_timings(timings: Optional[Sequence[str]]) -> None:
    bad = [t for t in (timings or []) if not is_valid_timing(t)]
    if bad:
        raise ValidationError("Invalid reminder timings (at most 7 days before the deadline): " + ", ".join(bad))


class ScheduleService:
    """
    Schedule and response use cases.

    Each operation returns a UseCaseResult carrying human-readable errors.
    RepositoryError is an infrastructure fault and propagates to the caller.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        responses: ResponseRepository,
        logger: Optional[LoggerPort] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.schedules = schedules
        self.responses = responses
        self.logger = logger
        self.clock = clock
        self.id_factory = id_factory

    def _run(self, operation: str, fn: Callable[[], object]) -> UseCaseResult:
        try:
            return UseCaseResult.ok(fn())
        except RepositoryError:
            raise
        except ValidationError as e:
            return UseCaseResult(success=False, errors=list(e.errors))
        except DatepollError as e:
            if self.logger:
                self.logger.debug(f"{operation} rejected", reason=str(e))
            return UseCaseResult.fail(str(e))

    def _load(self, schedule_id: str, guild_id: str) -> Schedule:
        if not (schedule_id or "").strip() or not (guild_id or "").strip():
            raise ValidationError("Schedule id and guild id are required")
        schedule = self.schedules.find_by_id(schedule_id, guild_id)
        if schedule is None:
            raise NotFoundError("Schedule not found")
        return schedule

    def _authorize(self, schedule: Schedule, editor_id: str, authorized: bool) -> None:
        if not (editor_id or "").strip():
            raise ValidationError("Editor id is required")
        if not (authorized or schedule.can_be_edited_by(editor_id)):
            raise PermissionDeniedError("You do not have permission to change this schedule")

    def create_schedule(
        self,
        guild_id: str,
        channel_id: str,
        author: User,
        title: str,
        dates: Sequence[DateInput],
        description: Optional[str] = None,
        deadline: DeadlineInput = None,
        reminder_timings: Optional[List[str]] = None,
        reminder_mentions: Optional[List[str]] = None,
    ) -> UseCaseResult:
        def create() -> Schedule:
            if not (author.id or "").strip() or not (author.username or "").strip():
                raise ValidationError("Author id and username are required")
            if not dates:
                raise ValidationError("At least one candidate date is required")
            _check_timings(reminder_timings)
            kwargs = {}
            if reminder_timings is not None:
                kwargs["reminder_timings"] = list(reminder_timings)
            if reminder_mentions is not None:
                kwargs["reminder_mentions"] = list(reminder_mentions)
            schedule = Schedule(
                id=self.id_factory(),
                guild_id=guild_id,
                channel_id=channel_id,
                title=title,
                dates=_coerce_dates(dates),
                created_by=author,
                author_id=author.id,
                description=description or None,
                deadline=parse_deadline(deadline),
                **kwargs,
            )
            self.schedules.save(schedule)
            if self.logger:
                self.logger.info("schedule created", schedule_id=schedule.id, guild_id=guild_id)
            return schedule

        return self._run("create_schedule", create)

    def update_schedule(
        self,
        schedule_id: str,
        guild_id: str,
        editor_id: str,
        authorized: bool = False,
        title=UNSET,
        description=UNSET,
        dates=UNSET,
        deadline=UNSET,
        reminder_timings=UNSET,
        reminder_mentions=UNSET,
        message_id=UNSET,
        prune_responses: bool = False,
    ) -> UseCaseResult:
        # closed schedules stay editable
        def update() -> Schedule:
            new_deadline = parse_deadline(deadline) if deadline is not UNSET else UNSET
            new_dates = _coerce_dates(dates) if dates is not UNSET else UNSET
            if reminder_timings is not UNSET:
                _check_timings(reminder_timings)

            schedule = self._load(schedule_id, guild_id)
            self._authorize(schedule, editor_id, authorized)

            if title is not UNSET:
                schedule.rename(title)
            if description is not UNSET:
                schedule.describe(description)
            if message_id is not UNSET:
                schedule.message_id = message_id or None
            removed: List[str] = []
            if new_dates is not UNSET:
                removed = schedule.replace_dates(new_dates)
            if new_deadline is not UNSET:
                schedule.change_deadline(new_deadline)
            if reminder_timings is not UNSET or reminder_mentions is not UNSET:
                schedule.configure_reminders(
                    timings=None if reminder_timings is UNSET else reminder_timings,
                    mentions=None if reminder_mentions is UNSET else reminder_mentions,
                )

            self.schedules.save(schedule)

            if removed and prune_responses:
                for response in self.responses.find_by_schedule_id(schedule_id, guild_id):
                    if response.prune(removed):
                        self.responses.save(response, guild_id)
            return schedule

        return self._run("update_schedule", update)

    def close_schedule(
        self,
        schedule_id: str,
        guild_id: str,
        editor_id: str,
        authorized: bool = False,
    ) -> UseCaseResult:
        def close() -> Schedule:
            schedule = self._load(schedule_id, guild_id)
            self._authorize(schedule, editor_id, authorized)
            if schedule.is_closed():
                raise ValidationError("This schedule is already closed")
            schedule.close()
            self.schedules.save(schedule)
            return schedule

        return self._run("close_schedule", close)

    def reopen_schedule(
        self,
        schedule_id: str,
        guild_id: str,
        editor_id: str,
        authorized: bool = False,
    ) -> UseCaseResult:
        def reopen() -> Schedule:
            schedule = self._load(schedule_id, guild_id)
            self._authorize(schedule, editor_id, authorized)
            if schedule.is_open():
                raise ValidationError("This schedule is already open")
            schedule.reopen()
            self.schedules.save(schedule)
            return schedule

        return self._run("reopen_schedule", reopen)

    def delete_schedule(
        self,
        schedule_id: str,
        guild_id: str,
        editor_id: str,
        authorized: bool = False,
    ) -> UseCaseResult:
        def delete() -> Schedule:
            schedule = self._load(schedule_id, guild_id)
            self._authorize(schedule, editor_id, authorized)
            self.responses.delete_by_schedule(schedule_id, guild_id)
            self.schedules.delete(schedule_id, guild_id)
            if self.logger:
                self.logger.info("schedule deleted", schedule_id=schedule_id, guild_id=guild_id)
            return schedule

        return self._run("delete_schedule", delete)

    def submit_response(
        self,
        schedule_id: str,
        guild_id: str,
        user: User,
        statuses: Dict[str, str],
        comment: Optional[str] = None,
    ) -> UseCaseResult:
        def submit() -> Response:
            errors: List[str] = []
            if not (user.id or "").strip() or not (user.username or "").strip():
                errors.append("User id and username are required")
            if not statuses:
                errors.append("At least one date status is required")
            if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
                errors.append(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
            parsed: Dict[str, ResponseStatus] = {}
            for date_id, raw in (statuses or {}).items():
                try:
                    parsed[date_id] = ResponseStatus(raw)
                except ValueError:
                    errors.append(f"Invalid status for {date_id}: {raw!r}")
            if errors:
                raise ValidationError(errors[0], errors)

            schedule = self._load(schedule_id, guild_id)
            if schedule.is_closed():
                errors.append("This schedule is closed")
            if schedule.is_deadline_passed(self.clock()):
                errors.append("The response deadline has passed")
            known = set(schedule.date_ids())
            errors.extend(f"Unknown date: {d}" for d in parsed if d not in known)
            if errors:
                raise ValidationError(errors[0], errors)

            existing = self.responses.find_by_user(schedule_id, user.id, guild_id)
            if existing is None:
                response = Response(
                    schedule_id=schedule_id,
                    user_id=user.id,
                    username=user.username,
                    display_name=user.display_name,
                    date_statuses=parsed,
                    comment=comment,
                )
            else:
                response = existing
                response.username = user.username
                response.display_name = user.display_name
                response.date_statuses.update(parsed)
                if comment is not None:
                    response.comment = comment
                response.updated_at = utcnow()
            self.responses.save(response, guild_id)

            if existing is None:
                schedule.total_responses = len(self.responses.find_by_schedule_id(schedule_id, guild_id))
                self.schedules.save(schedule)
            return response

        return self._run("submit_response", submit)

    def get_summary(self, schedule_id: str, guild_id: str) -> UseCaseResult:
        def summarize() -> ScheduleSummary:
            schedule = self._load(schedule_id, guild_id)
            responses = self.responses.find_by_schedule_id(schedule_id, guild_id)
            return ScheduleSummary(
                schedule=schedule,
                responses=responses,
                statistics=aggregate_responses(schedule.dates, responses),
            )

        return self._run("get_summary", summarize)
