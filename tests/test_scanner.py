from __future__ import annotations

from datetime import timedelta

from conftest import NOW, ListLogger, make_schedule
from datepoll.reminders.scanner import DeadlineScanner, due_tokens, is_just_closed
from datepoll.scheduling.models import ScheduleStatus


def test_only_unsent_token_is_due() -> None:
    schedule = make_schedule(
        deadline=NOW + timedelta(hours=8) - timedelta(minutes=1),
        reminders_sent={"3d", "1d"},
    )
    assert due_tokens(schedule, NOW) == ["8h"]


def test_missed_cycles_return_every_passed_token() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(hours=7))
    assert due_tokens(schedule, NOW) == ["3d", "1d", "8h"]


def test_nothing_due_far_from_deadline() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(days=4))
    assert due_tokens(schedule, NOW) == []


def test_trigger_instant_is_inclusive() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(days=1), reminder_timings=["1d"])
    assert due_tokens(schedule, NOW) == ["1d"]
    assert due_tokens(schedule, NOW - timedelta(seconds=1)) == []


def test_empty_timings_use_defaults() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(hours=20), reminder_timings=[])
    assert due_tokens(schedule, NOW) == ["3d", "1d"]


def test_closed_or_deadline_less_schedules_have_no_reminders() -> None:
    closed = make_schedule(deadline=NOW + timedelta(hours=1), status=ScheduleStatus.CLOSED)
    assert due_tokens(closed, NOW) == []
    assert due_tokens(make_schedule(), NOW) == []


def test_just_closed_predicate() -> None:
    assert is_just_closed(make_schedule(deadline=NOW), NOW)
    assert is_just_closed(make_schedule(deadline=NOW - timedelta(hours=2)), NOW)
    assert not is_just_closed(make_schedule(deadline=NOW + timedelta(minutes=1)), NOW)
    assert not is_just_closed(make_schedule(deadline=NOW, status=ScheduleStatus.CLOSED), NOW)


def test_scan_splits_reminders_and_closures(schedules) -> None:
    schedules.save(make_schedule("soon", deadline=NOW + timedelta(hours=7)))
    schedules.save(make_schedule("expired", deadline=NOW - timedelta(hours=1)))
    schedules.save(make_schedule("later", deadline=NOW + timedelta(days=5)))
    schedules.save(make_schedule("ancient", deadline=NOW - timedelta(days=30)))
    schedules.save(make_schedule("undated"))

    logger = ListLogger()
    result = DeadlineScanner(schedules, logger).scan(NOW)

    assert [(r.schedule_id, r.token) for r in result.reminders] == [
        ("soon", "3d"),
        ("soon", "1d"),
        ("soon", "8h"),
    ]
    assert result.reminders[0].message == "3 days left until the response deadline"
    assert [s.id for s in result.just_closed] == ["expired"]
    assert "scan complete" in logger.messages("INFO")


def test_scan_filters_by_guild(schedules) -> None:
    schedules.save(make_schedule("a", deadline=NOW - timedelta(hours=1), guild_id="g1"))
    schedules.save(make_schedule("b", deadline=NOW - timedelta(hours=1), guild_id="g2"))

    result = DeadlineScanner(schedules).scan(NOW, guild_id="g2")
    assert [s.id for s in result.just_closed] == ["b"]


def test_closed_schedule_leaves_just_closed_set(schedules) -> None:
    schedule = make_schedule(deadline=NOW - timedelta(minutes=5))
    schedules.save(schedule)
    scanner = DeadlineScanner(schedules)

    assert [s.id for s in scanner.scan(NOW).just_closed] == ["s1"]

    schedule.close()
    schedules.save(schedule)
    assert scanner.scan(NOW).just_closed == []


def test_week_long_token_is_found_by_the_scan(schedules) -> None:
    schedules.save(make_schedule("week", deadline=NOW + timedelta(days=7), reminder_timings=["7d"]))

    result = DeadlineScanner(schedules, lookahead=timedelta(hours=1)).scan(NOW)
    assert [(r.schedule_id, r.token) for r in result.reminders] == [("week", "7d")]


def test_unparseable_stored_token_is_ignored() -> None:
    schedule = make_schedule(deadline=NOW + timedelta(hours=7), reminder_timings=["1000000d", "8h"])
    assert due_tokens(schedule, NOW) == ["8h"]


def test_one_broken_schedule_does_not_stop_the_scan(schedules, monkeypatch) -> None:
    from datepoll.reminders import scanner as scanner_module

    schedules.save(make_schedule("broken", deadline=NOW + timedelta(hours=7)))
    schedules.save(make_schedule("fine", deadline=NOW + timedelta(hours=7), reminder_timings=["8h"]))
    schedules.save(make_schedule("expired", deadline=NOW - timedelta(hours=1)))
    real_due_tokens = scanner_module.due_tokens

    def due_tokens_or_fail(schedule, now):
        if schedule.id == "broken":
            raise OverflowError("date value out of range")
        return real_due_tokens(schedule, now)

    monkeypatch.setattr(scanner_module, "due_tokens", due_tokens_or_fail)
    logger = ListLogger()
    result = DeadlineScanner(schedules, logger).scan(NOW)

    assert result.failed == ["broken"]
    assert [(r.schedule_id, r.token) for r in result.reminders] == [("fine", "8h")]
    assert [s.id for s in result.just_closed] == ["expired"]
    assert "failed to evaluate schedule" in logger.messages("ERROR")
