from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from ..scheduling.errors import RepositoryError
from ..scheduling.models import (
    Response,
    ResponseStatus,
    Schedule,
    ScheduleDate,
    ScheduleStatus,
    User,
    to_utc,
)
from ..scheduling.store import ResponseRepository, ScheduleRepository
from .config import DEADLINE_INDEX_NAME
from .serialization import ddb_clean, from_ddb, to_ddb_safe

DEADLINE_PK = "DEADLINE"
LEGACY_SENT_TOKEN = "8h"


def _schedule_key(guild_id: str, schedule_id: str) -> dict:
    return {"pk": f"guild#{guild_id}", "sk": f"schedule#{schedule_id}"}


def _response_key(guild_id: str, schedule_id: str, user_id: str) -> dict:
    return {"pk": f"guild#{guild_id}#schedule#{schedule_id}", "sk": f"response#{user_id}"}


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return to_utc(dt).isoformat() if dt else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _epoch(dt: datetime) -> int:
    return int(to_utc(dt).timestamp())


def schedule_to_item(schedule: Schedule) -> dict:
    item: Dict[str, Any] = _schedule_key(schedule.guild_id, schedule.id)
    item.update({
        "record_type": "SCHEDULE",
        "id": schedule.id,
        "guildId": schedule.guild_id,
        "channelId": schedule.channel_id,
        "messageId": schedule.message_id,
        "title": schedule.title,
        "description": schedule.description,
        "dates": [{"id": d.id, "datetime": d.datetime} for d in schedule.dates],
        "createdBy": {
            "id": schedule.created_by.id,
            "username": schedule.created_by.username,
            "displayName": schedule.created_by.display_name,
        },
        "authorId": schedule.author_id,
        "deadline": _iso(schedule.deadline),
        "reminderTimings": list(schedule.reminder_timings),
        "reminderMentions": list(schedule.reminder_mentions),
        "remindersSent": set(schedule.reminders_sent),
        "status": schedule.status.value,
        "totalResponses": schedule.total_responses,
        "createdAt": _iso(schedule.created_at),
        "updatedAt": _iso(schedule.updated_at),
    })
    if schedule.deadline is not None:
        # sparse index: only schedules with a deadline are visible to the scanner
        item["deadline_pk"] = DEADLINE_PK
        item["deadline_ts"] = _epoch(schedule.deadline)
    return ddb_clean(to_ddb_safe(item))


# Every schedule attribute except the key and the reminder set. An attribute
# missing from the item (None or empty) is removed on save.
SCHEDULE_ATTRIBUTES = (
    "record_type",
    "id",
    "guildId",
    "channelId",
    "messageId",
    "title",
    "description",
    "dates",
    "createdBy",
    "authorId",
    "deadline",
    "reminderTimings",
    "reminderMentions",
    "status",
    "totalResponses",
    "createdAt",
    "updatedAt",
    "deadline_pk",
    "deadline_ts",
)


def schedule_update(schedule: Schedule) -> dict:
    """
    update_item arguments that write ``schedule`` without a blind overwrite of
    ``remindersSent``: the set is unioned in with ADD, or removed together
    with the legacy flag after a deadline change.
    """
    item = schedule_to_item(schedule)
    sets: List[str] = []
    removes: List[str] = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    for i, attr in enumerate(SCHEDULE_ATTRIBUTES):
        names[f"#a{i}"] = attr
        if attr in item:
            sets.append(f"#a{i} = :v{i}")
            values[f":v{i}"] = item[attr]
        else:
            removes.append(f"#a{i}")

    adds: List[str] = []
    sent = item.get("remindersSent")
    if schedule.reminders_reset:
        names.update({"#sent": "remindersSent", "#legacy": "reminderSent"})
        removes.append("#legacy")
        if sent:
            sets.append("#sent = :sent")
            values[":sent"] = sent
        else:
            removes.append("#sent")
    elif sent:
        names["#sent"] = "remindersSent"
        adds.append("#sent :sent")
        values[":sent"] = sent

    expression = "SET " + ", ".join(sets)
    if removes:
        expression += " REMOVE " + ", ".join(removes)
    if adds:
        expression += " ADD " + ", ".join(adds)
    return {
        "Key": _schedule_key(schedule.guild_id, schedule.id),
        "UpdateExpression": expression,
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


def schedule_from_item(raw: dict) -> Schedule:
    item = from_ddb(raw)
    sent: Set[str] = set(item.get("remindersSent") or ())
    if not sent and item.get("reminderSent") is True:
        sent = {LEGACY_SENT_TOKEN}
    created_by = item.get("createdBy") or {}
    status = item.get("status")
    return Schedule(
        id=item["id"],
        guild_id=item.get("guildId") or "default",
        channel_id=item["channelId"],
        message_id=item.get("messageId"),
        title=item["title"],
        description=item.get("description"),
        dates=[ScheduleDate(id=d["id"], datetime=d.get("datetime", "")) for d in item.get("dates") or []],
        created_by=User(
            id=created_by.get("id", item.get("authorId", "")),
            username=created_by.get("username", ""),
            display_name=created_by.get("displayName"),
        ),
        author_id=item.get("authorId") or created_by.get("id", ""),
        deadline=_parse_iso(item.get("deadline")),
        reminder_timings=list(item.get("reminderTimings") or []),
        reminder_mentions=list(item.get("reminderMentions") or []),
        reminders_sent=sent,
        status=ScheduleStatus.CLOSED if status == ScheduleStatus.CLOSED.value else ScheduleStatus.OPEN,
        total_responses=int(item.get("totalResponses") or 0),
        created_at=_parse_iso(item.get("createdAt")) or datetime.now(timezone.utc),
        updated_at=_parse_iso(item.get("updatedAt")) or datetime.now(timezone.utc),
    )


def response_to_item(response: Response, guild_id: str) -> dict:
    item: Dict[str, Any] = _response_key(guild_id, response.schedule_id, response.user_id)
    item.update({
        "record_type": "RESPONSE",
        "guildId": guild_id,
        "scheduleId": response.schedule_id,
        "userId": response.user_id,
        "username": response.username,
        "displayName": response.display_name,
        "dateStatuses": {k: v.value for k, v in response.date_statuses.items()},
        "comment": response.comment,
        "updatedAt": _iso(response.updated_at),
    })
    return ddb_clean(to_ddb_safe(item))


def response_from_item(raw: dict) -> Response:
    item = from_ddb(raw)
    return Response(
        schedule_id=item["scheduleId"],
        user_id=item["userId"],
        username=item.get("username", ""),
        display_name=item.get("displayName"),
        # legacy tokens ("available", "unavailable") are normalized here and nowhere else
        date_statuses={k: ResponseStatus.from_legacy(v) for k, v in (item.get("dateStatuses") or {}).items()},
        comment=item.get("comment"),
        updated_at=_parse_iso(item.get("updatedAt")) or datetime.now(timezone.utc),
    )


class _DdbBase:
    def __init__(self, table):
        self._table = table

    def _call(self, op: str, fn, **kwargs):
        try:
            return fn(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise RepositoryError(f"DynamoDB {op} failed", cause=e) from e

    def _query_all(self, **kwargs) -> Iterator[dict]:
        while True:
            resp = self._call("query", self._table.query, **kwargs)
            yield from resp.get("Items", [])
            last = resp.get("LastEvaluatedKey")
            if not last:
                return
            kwargs["ExclusiveStartKey"] = last


class DdbScheduleRepository(_DdbBase, ScheduleRepository):
    """
    Schedules live in a single table keyed by:
      pk = "guild#<guildId>"
      sk = "schedule#<scheduleId>"

    Deadline lookups use the sparse GSI named by DEADLINE_INDEX_NAME
    (hash deadline_pk, range deadline_ts).
    """

    def __init__(self, table, index_name: str = DEADLINE_INDEX_NAME):
        super().__init__(table)
        self._index_name = index_name

    def save(self, schedule: Schedule) -> None:
        self._call("update_item", self._table.update_item, **schedule_update(schedule))
        schedule.reminders_reset = False

    def find_by_id(self, schedule_id: str, guild_id: str) -> Optional[Schedule]:
        resp = self._call("get_item", self._table.get_item, Key=_schedule_key(guild_id, schedule_id))
        item = resp.get("Item")
        if not item or item.get("record_type") != "SCHEDULE":
            return None
        return schedule_from_item(item)

    def find_by_channel(self, channel_id: str, guild_id: str, limit: int = 100) -> List[Schedule]:
        items = self._query_all(
            KeyConditionExpression=Key("pk").eq(f"guild#{guild_id}") & Key("sk").begins_with("schedule#"),
            FilterExpression=Attr("channelId").eq(channel_id),
        )
        schedules = [schedule_from_item(i) for i in items]
        schedules.sort(key=lambda s: s.created_at, reverse=True)
        return schedules[:limit]

    def find_by_deadline_range(
        self,
        start: datetime,
        end: datetime,
        guild_id: Optional[str] = None,
    ) -> List[Schedule]:
        kwargs: Dict[str, Any] = {
            "IndexName": self._index_name,
            "KeyConditionExpression": Key("deadline_pk").eq(DEADLINE_PK)
            & Key("deadline_ts").between(_epoch(start), _epoch(end)),
        }
        if guild_id:
            kwargs["FilterExpression"] = Attr("guildId").eq(guild_id)
        # GSI projections may be partial, so re-read the full item by key
        out: List[Schedule] = []
        for item in self._query_all(**kwargs):
            if "channelId" in item and "title" in item:
                out.append(schedule_from_item(item))
                continue
            full = self.find_by_id(str(item.get("id")), str(item.get("guildId")))
            if full is not None:
                out.append(full)
        return out

    def find_by_message_id(self, message_id: str, guild_id: str) -> Optional[Schedule]:
        items = self._query_all(
            KeyConditionExpression=Key("pk").eq(f"guild#{guild_id}") & Key("sk").begins_with("schedule#"),
            FilterExpression=Attr("messageId").eq(message_id),
        )
        for item in items:
            return schedule_from_item(item)
        return None

    def count_by_guild(self, guild_id: str) -> int:
        kwargs: Dict[str, Any] = {
            "KeyConditionExpression": Key("pk").eq(f"guild#{guild_id}") & Key("sk").begins_with("schedule#"),
            "Select": "COUNT",
        }
        total = 0
        while True:
            resp = self._call("query", self._table.query, **kwargs)
            total += int(resp.get("Count", 0))
            last = resp.get("LastEvaluatedKey")
            if not last:
                return total
            kwargs["ExclusiveStartKey"] = last

    def delete(self, schedule_id: str, guild_id: str) -> None:
        self._call("delete_item", self._table.delete_item, Key=_schedule_key(guild_id, schedule_id))

    def update_reminders(
        self,
        schedule_id: str,
        guild_id: str,
        reminders_sent: Set[str],
        legacy_sent: Optional[bool] = None,
    ) -> None:
        tokens = {t for t in reminders_sent if t}
        if not tokens:
            return
        # ADD on a string set is a server-side union
        expression = "ADD #sent :tokens SET #updated = :now"
        names = {"#sent": "remindersSent", "#updated": "updatedAt"}
        values: Dict[str, Any] = {":tokens": tokens, ":now": _iso(datetime.now(timezone.utc))}
        if legacy_sent is not None:
            expression += ", #legacy = :legacy"
            names["#legacy"] = "reminderSent"
            values[":legacy"] = bool(legacy_sent)
        try:
            self._table.update_item(
                Key=_schedule_key(guild_id, schedule_id),
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                # schedule deleted between scan and send; nothing to record
                return
            raise RepositoryError("DynamoDB update_item failed", cause=e) from e
        except BotoCoreError as e:
            raise RepositoryError("DynamoDB update_item failed", cause=e) from e


class DdbResponseRepository(_DdbBase, ResponseRepository):
    """
    Responses are keyed by:
      pk = "guild#<guildId>#schedule#<scheduleId>"
      sk = "response#<userId>"
    so put_item is an upsert on (scheduleId, userId).
    """

    def save(self, response: Response, guild_id: str) -> None:
        self._call("put_item", self._table.put_item, Item=response_to_item(response, guild_id))

    def find_by_user(self, schedule_id: str, user_id: str, guild_id: str) -> Optional[Response]:
        resp = self._call(
            "get_item", self._table.get_item, Key=_response_key(guild_id, schedule_id, user_id)
        )
        item = resp.get("Item")
        if not item or item.get("record_type") != "RESPONSE":
            return None
        return response_from_item(item)

    def find_by_schedule_id(self, schedule_id: str, guild_id: str) -> List[Response]:
        items = self._query_all(
            KeyConditionExpression=Key("pk").eq(f"guild#{guild_id}#schedule#{schedule_id}")
            & Key("sk").begins_with("response#"),
        )
        responses = [response_from_item(i) for i in items]
        responses.sort(key=lambda r: r.updated_at)
        return responses

    def delete(self, schedule_id: str, user_id: str, guild_id: str) -> None:
        self._call(
            "delete_item", self._table.delete_item, Key=_response_key(guild_id, schedule_id, user_id)
        )

    def delete_by_schedule(self, schedule_id: str, guild_id: str) -> None:
        keys = [
            {"pk": i["pk"], "sk": i["sk"]}
            for i in self._query_all(
                KeyConditionExpression=Key("pk").eq(f"guild#{guild_id}#schedule#{schedule_id}")
                & Key("sk").begins_with("response#"),
                ProjectionExpression="pk, sk",
            )
        ]
        if not keys:
            return
        try:
            with self._table.batch_writer() as batch:
                for key in keys:
                    batch.delete_item(Key=key)
        except (ClientError, BotoCoreError) as e:
            raise RepositoryError("DynamoDB batch delete failed", cause=e) from e
