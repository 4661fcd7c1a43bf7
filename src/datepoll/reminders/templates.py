from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from ..scheduling.aggregator import ScheduleStatistics
from ..scheduling.models import Response, Schedule
from ..scheduling.timings import timing_label

REMINDER_COLOR = 0xFFCC00
SUMMARY_COLOR = 0x2ECC71
CLOSED_COLOR = 0xE74C3C


def format_deadline(deadline: Optional[datetime], tz_name: str = "UTC") -> str:
    if deadline is None:
        return "not set"
    local = deadline.astimezone(ZoneInfo(tz_name or "UTC"))
    return f"{local.strftime('%a %m/%d %H:%M')} {tz_name}"


def reminder_text(token: str) -> str:
    return f"{timing_label(token)} left until the response deadline"


def mention_prefix(mentions: Sequence[str]) -> str:
    return f"{' '.join(mentions)} " if mentions else ""


def reminder_message(
    schedule: Schedule,
    message_text: str,
    mentions: Sequence[str],
    tz_name: str = "UTC",
) -> dict:
    payload = {
        "content": f"{mention_prefix(mentions)}⏰ **Deadline reminder**: {message_text} for “{schedule.title}”!",
        "embeds": [
            {
                "color": REMINDER_COLOR,
                "fields": [
                    {"name": "Deadline", "value": format_deadline(schedule.deadline, tz_name), "inline": True},
                    {"name": "Responses so far", "value": str(schedule.total_responses), "inline": True},
                ],
                "footer": {"text": "If you have not responded yet, please do so soon!"},
            }
        ],
    }
    if schedule.message_id:
        payload["message_reference"] = {"message_id": schedule.message_id}
    return payload


def _date_lines(schedule: Schedule, responses: List[Response], stats: ScheduleStatistics) -> List[dict]:
    fields = []
    for d in schedule.dates:
        tally = stats.tallies[d.id]
        voters = []
        for r in responses:
            status = r.status_for(d.id)
            if status is not None:
                voters.append(f"{status.emoji} {r.display_name or r.username}")
        star = "⭐ " if d.id == stats.optimal_date_id else ""
        fields.append(
            {
                "name": f"{star}{d.datetime}",
                "value": "\n".join(
                    [
                        f"○ {tally.ok}  △ {tally.maybe}  × {tally.ng}",
                        ", ".join(voters) if voters else "No responses",
                    ]
                ),
                "inline": False,
            }
        )
    return fields


def summary_message(
    schedule: Schedule,
    responses: List[Response],
    stats: Optional[ScheduleStatistics],
    mentions: Sequence[str],
) -> dict:
    info = "\n".join(
        [
            f"Participants: {len(responses)}",
            f"Created by: {schedule.created_by.username}",
            f"Created: {schedule.created_at.strftime('%Y-%m-%d')}",
        ]
    )
    fields = [{"name": "Overview", "value": info, "inline": False}]
    if stats is not None:
        fields.extend(_date_lines(schedule, responses, stats))
        footer = "⭐ marks the most popular date"
    else:
        footer = "No one responded before the deadline"

    embed = {"title": "📊 Results", "color": SUMMARY_COLOR, "fields": fields, "footer": {"text": footer}}
    if schedule.description:
        embed["description"] = schedule.description
    return {
        "content": f"{mention_prefix(mentions)}**📅 “{schedule.title}” is now closed!**",
        "embeds": [embed],
    }


def closure_notice(schedule: Schedule) -> dict:
    return {
        "content": f"🔒 Responses for “{schedule.title}” are closed. Thanks to everyone who replied!",
        "embeds": [],
    }


def closed_main_message(schedule: Schedule, tz_name: str = "UTC") -> dict:
    """Replacement body for the poll's own message once it is closed. Drops the vote buttons."""
    embed = {
        "title": f"🔒 {schedule.title}",
        "color": CLOSED_COLOR,
        "fields": [
            {"name": "Status", "value": "Closed", "inline": True},
            {"name": "Responses", "value": str(schedule.total_responses), "inline": True},
            {"name": "Deadline", "value": format_deadline(schedule.deadline, tz_name), "inline": True},
        ],
        "footer": {"text": "Responses are no longer accepted"},
    }
    if schedule.description:
        embed["description"] = schedule.description
    return {"embeds": [embed], "components": []}
