from __future__ import annotations

from datetime import timedelta

from conftest import NOW, make_schedule
from datepoll.scheduling.models import Response, ResponseStatus


def test_reads_are_copies(schedules) -> None:
    schedules.save(make_schedule())
    loaded = schedules.find_by_id("s1", "g1")
    loaded.title = "changed"
    assert schedules.find_by_id("s1", "g1").title == "Team dinner"


def test_find_by_channel_newest_first(schedules) -> None:
    schedules.save(make_schedule("old", created_at=NOW - timedelta(days=1)))
    schedules.save(make_schedule("new", created_at=NOW))
    schedules.save(make_schedule("other", channel_id="c2"))

    assert [s.id for s in schedules.find_by_channel("c1", "g1")] == ["new", "old"]
    assert [s.id for s in schedules.find_by_channel("c1", "g1", limit=1)] == ["new"]


def test_find_by_message_id_and_count(schedules) -> None:
    schedules.save(make_schedule("a", message_id="m1"))
    schedules.save(make_schedule("b", guild_id="g2", message_id="m1"))

    assert schedules.find_by_message_id("m1", "g1").id == "a"
    assert schedules.find_by_message_id("m9", "g1") is None
    assert schedules.count_by_guild("g1") == 1


def test_update_reminders_merges(schedules) -> None:
    schedules.save(make_schedule(deadline=NOW, reminders_sent={"3d"}))
    schedules.update_reminders("s1", "g1", {"1d"})
    schedules.update_reminders("missing", "g1", {"8h"})
    assert schedules.find_by_id("s1", "g1").reminders_sent == {"3d", "1d"}


def test_deadline_range_is_inclusive_and_sorted(schedules) -> None:
    schedules.save(make_schedule("late", deadline=NOW + timedelta(hours=2)))
    schedules.save(make_schedule("edge", deadline=NOW))
    schedules.save(make_schedule("out", deadline=NOW + timedelta(hours=3)))

    found = schedules.find_by_deadline_range(NOW, NOW + timedelta(hours=2))
    assert [s.id for s in found] == ["edge", "late"]


def test_response_delete_by_schedule(responses) -> None:
    for user in ("u1", "u2"):
        responses.save(Response("s1", user, user, {"d1": ResponseStatus.OK}), "g1")
    responses.save(Response("s2", "u1", "u1", {"d1": ResponseStatus.NG}), "g1")

    responses.delete_by_schedule("s1", "g1")

    assert responses.find_by_schedule_id("s1", "g1") == []
    assert len(responses.find_by_schedule_id("s2", "g1")) == 1


def test_stale_save_keeps_reminders_recorded_since_the_read(schedules) -> None:
    schedules.save(make_schedule(deadline=NOW + timedelta(days=2)))
    stale = schedules.find_by_id("s1", "g1")
    schedules.update_reminders("s1", "g1", {"3d"})

    stale.total_responses = 1
    schedules.save(stale)

    stored = schedules.find_by_id("s1", "g1")
    assert stored.reminders_sent == {"3d"}
    assert stored.total_responses == 1


def test_deadline_change_replaces_stored_reminders(schedules) -> None:
    schedules.save(make_schedule(deadline=NOW + timedelta(days=2), reminders_sent={"3d", "1d"}))
    schedule = schedules.find_by_id("s1", "g1")
    schedule.change_deadline(NOW + timedelta(days=4))

    schedules.save(schedule)

    assert schedules.find_by_id("s1", "g1").reminders_sent == set()
    assert schedule.reminders_reset is False
