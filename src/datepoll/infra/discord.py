from __future__ import annotations

import json
import threading
import urllib.parse
from typing import Dict, List, Optional, Sequence

import urllib3

from ..reminders.templates import closed_main_message, closure_notice, reminder_message, summary_message
from ..scheduling.aggregator import aggregate_responses
from ..scheduling.errors import NotificationError
from ..scheduling.models import Schedule
from ..scheduling.ports import LoggerPort, NotificationPort
from ..scheduling.store import ResponseRepository, ScheduleRepository
from .config import DISCORD_API_BASE, DISPLAY_TIMEZONE

http = urllib3.PoolManager()

PASSTHROUGH_MENTIONS = ("@everyone", "@here")


def _is_formatted_mention(mention: str) -> bool:
    return mention in PASSTHROUGH_MENTIONS or (mention.startswith("<@") and mention.endswith(">"))


class DiscordNotifier(NotificationPort):
    """NotificationPort backed by the Discord REST API (bot token auth)."""

    def __init__(
        self,
        token: str,
        schedules: ScheduleRepository,
        responses: ResponseRepository,
        logger: Optional[LoggerPort] = None,
        api_base: str = DISCORD_API_BASE,
        timeout_seconds: float = 10.0,
        tz_name: str = DISPLAY_TIMEZONE,
        pool: Optional[urllib3.PoolManager] = None,
    ) -> None:
        self.token = token
        self.schedules = schedules
        self.responses = responses
        self.logger = logger
        self.api_base = api_base.rstrip("/")
        self.timeout = urllib3.Timeout(total=timeout_seconds)
        self.tz_name = tz_name
        self.http = pool or http
        self._members: Dict[str, Dict[str, str]] = {}
        self._members_lock = threading.Lock()

    def _request(self, method: str, path: str, payload: Optional[dict] = None):
        headers = {"Authorization": f"Bot {self.token}"}
        body = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            body = json.dumps(payload).encode("utf-8")
        try:
            resp = self.http.request(
                method,
                f"{self.api_base}{path}",
                body=body,
                headers=headers,
                timeout=self.timeout,
                retries=False,
            )
        except urllib3.exceptions.HTTPError as e:
            raise NotificationError(f"Discord {method} {path} failed: {e!r}") from e
        if resp.status >= 400:
            detail = resp.data.decode("utf-8", errors="replace")[:300]
            raise NotificationError(f"Discord {method} {path} failed ({resp.status}): {detail}")
        return json.loads(resp.data.decode("utf-8")) if resp.data else {}

    def _post_message(self, channel_id: str, payload: dict) -> dict:
        return self._request("POST", f"/channels/{channel_id}/messages", payload)

    def _lookup_member(self, guild_id: str, username: str) -> Optional[str]:
        key = username.lower()
        with self._members_lock:
            cached = self._members.get(guild_id, {})
            if key in cached:
                return cached[key]
        query = urllib.parse.urlencode({"query": username, "limit": 5})
        try:
            members = self._request("GET", f"/guilds/{guild_id}/members/search?{query}")
        except NotificationError as e:
            if self.logger:
                self.logger.warn("guild member search failed", guild_id=guild_id, err=repr(e))
            return None
        found = {}
        for member in members or []:
            user = member.get("user") or {}
            if user.get("username") and user.get("id"):
                found[user["username"].lower()] = user["id"]
        with self._members_lock:
            self._members.setdefault(guild_id, {}).update(found)
        return found.get(key)

    def resolve_mentions(self, mentions: Sequence[str], guild_id: str) -> List[str]:
        resolved: List[str] = []
        for mention in mentions or []:
            if _is_formatted_mention(mention):
                resolved.append(mention)
                continue
            name = mention[1:] if mention.startswith("@") else mention
            member_id = self._lookup_member(guild_id, name) if name else None
            if member_id:
                resolved.append(f"<@{member_id}>")
            else:
                if self.logger:
                    self.logger.warn("could not resolve mention", mention=mention, guild_id=guild_id)
                resolved.append(mention)
        return resolved

    def send_deadline_reminder(self, schedule: Schedule, message_text: str) -> None:
        mentions = self.resolve_mentions(schedule.reminder_mentions, schedule.guild_id)
        self._post_message(
            schedule.channel_id,
            reminder_message(schedule, message_text, mentions, self.tz_name),
        )

    def send_summary_message(self, schedule_id: str, guild_id: str) -> None:
        schedule = self.schedules.find_by_id(schedule_id, guild_id)
        if schedule is None:
            raise NotificationError(f"Schedule {schedule_id} not found for summary")
        responses = self.responses.find_by_schedule_id(schedule_id, guild_id)
        stats = aggregate_responses(schedule.dates, responses)
        mentions = self.resolve_mentions(schedule.reminder_mentions, guild_id)
        self._post_message(schedule.channel_id, summary_message(schedule, responses, stats, mentions))

    def _edit_message(self, channel_id: str, message_id: str, payload: dict) -> dict:
        return self._request("PATCH", f"/channels/{channel_id}/messages/{message_id}", payload)

    def send_closure_notice(self, schedule: Schedule) -> None:
        if schedule.message_id:
            self._edit_message(
                schedule.channel_id,
                schedule.message_id,
                closed_main_message(schedule, self.tz_name),
            )
            return
        self._post_message(schedule.channel_id, closure_notice(schedule))
