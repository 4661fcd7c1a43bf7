from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, make_schedule
from datepoll.scheduling.errors import ValidationError
from datepoll.scheduling.models import (
    Response,
    ResponseStatus,
    ScheduleDate,
    ScheduleStatus,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("ok", ResponseStatus.OK),
        ("yes", ResponseStatus.OK),
        ("available", ResponseStatus.OK),
        ("Available", ResponseStatus.OK),
        ("maybe", ResponseStatus.MAYBE),
        ("ng", ResponseStatus.NG),
        ("no", ResponseStatus.NG),
        ("unavailable", ResponseStatus.NG),
    ],
)
def test_from_legacy_table(raw: str, expected: ResponseStatus) -> None:
    assert ResponseStatus.from_legacy(raw) is expected


@pytest.mark.parametrize("raw", ["", "perhaps", None])
def test_from_legacy_rejects_unknown(raw) -> None:
    with pytest.raises(ValidationError):
        ResponseStatus.from_legacy(raw)


def test_schedule_requires_fields_and_dates() -> None:
    with pytest.raises(ValidationError):
        make_schedule(title="  ")
    with pytest.raises(ValidationError):
        make_schedule(dates=[])


def test_deadline_normalized_to_utc() -> None:
    naive = datetime(2024, 6, 3, 9, 0)
    schedule = make_schedule(deadline=naive)
    assert schedule.deadline.tzinfo == timezone.utc

    tokyo = timezone(timedelta(hours=9))
    schedule = make_schedule(deadline=datetime(2024, 6, 3, 18, 0, tzinfo=tokyo))
    assert schedule.deadline == datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)


def test_deadline_edit_empties_reminders_sent() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(days=2), reminders_sent={"3d", "1d"})

    assert schedule.change_deadline(NOW + timedelta(days=5)) is True
    assert schedule.reminders_sent == set()

    schedule.mark_reminders_sent({"3d"})
    assert schedule.change_deadline(NOW + timedelta(hours=1)) is True
    assert schedule.reminders_sent == set()

    schedule.mark_reminders_sent({"1d"})
    assert schedule.change_deadline(None) is True
    assert schedule.reminders_sent == set()


def test_same_deadline_keeps_reminders_sent() -> None:
    deadline = NOW + timedelta(days=2)
    schedule = make_schedule(deadline=deadline, reminders_sent={"3d"})
    assert schedule.change_deadline(deadline) is False
    assert schedule.reminders_sent == {"3d"}


def test_reminders_sent_only_grows() -> None:
    schedule = make_schedule(reminders_sent={"3d"})
    schedule.mark_reminders_sent({"1d"})
    schedule.mark_reminders_sent({"3d"})
    assert schedule.reminders_sent == {"3d", "1d"}


def test_close_and_reopen() -> None:
    schedule = make_schedule(reminders_sent={"3d"})
    schedule.close()
    assert schedule.status == ScheduleStatus.CLOSED
    schedule.reopen()
    assert schedule.is_open()
    assert schedule.reminders_sent == {"3d"}


def test_replace_dates_reports_removed_ids() -> None:
    schedule = make_schedule()
    removed = schedule.replace_dates([ScheduleDate("d1", "6/10"), ScheduleDate("d4", "6/14")])
    assert removed == ["d2", "d3"]
    with pytest.raises(ValidationError):
        schedule.replace_dates([ScheduleDate("d1", "a"), ScheduleDate("d1", "b")])


def test_is_deadline_passed() -> None:
    assert not make_schedule().is_deadline_passed(NOW)
    schedule = make_schedule(deadline=NOW)
    assert schedule.is_deadline_passed(NOW)
    assert not schedule.is_deadline_passed(NOW - timedelta(seconds=1))


def test_response_prune() -> None:
    response = Response(
        schedule_id="s1",
        user_id="u1",
        username="bob",
        date_statuses={"d1": ResponseStatus.OK, "d2": ResponseStatus.NG},
    )
    assert response.prune(["d2", "d9"]) is True
    assert response.date_statuses == {"d1": ResponseStatus.OK}
    assert response.prune(["d2"]) is False
