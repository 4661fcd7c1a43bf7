from __future__ import annotations

import json
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from conftest import ListLogger
from datepoll.infra.trigger import CYCLE_SCHEDULE_NAME, ensure_cycle_schedule


class _NotFound(Exception):
    pass


class _Conflict(Exception):
    pass


def _client() -> MagicMock:
    client = MagicMock()
    client.exceptions.ResourceNotFoundException = _NotFound
    client.exceptions.ConflictException = _Conflict
    return client


def _ensure(client, logger=None, **kwargs):
    params = dict(target_arn="arn:lambda", role_arn="arn:role", group="datepoll", rate_minutes=5)
    params.update(kwargs)
    return ensure_cycle_schedule(logger or ListLogger(), client=client, **params)


def test_creates_rate_schedule_when_missing() -> None:
    client = _client()
    client.get_schedule.side_effect = _NotFound()

    assert _ensure(client) == CYCLE_SCHEDULE_NAME

    kwargs = client.create_schedule.call_args.kwargs
    assert kwargs["ScheduleExpression"] == "rate(5 minutes)"
    assert kwargs["GroupName"] == "datepoll"
    assert kwargs["Target"]["Arn"] == "arn:lambda"
    assert kwargs["Target"]["RoleArn"] == "arn:role"
    assert json.loads(kwargs["Target"]["Input"]) == {"source": "datepoll.cycle"}


def test_existing_schedule_is_left_alone() -> None:
    client = _client()
    assert _ensure(client) == CYCLE_SCHEDULE_NAME
    client.create_schedule.assert_not_called()


def test_conflict_counts_as_existing() -> None:
    client = _client()
    client.get_schedule.side_effect = _NotFound()
    client.create_schedule.side_effect = _Conflict()
    assert _ensure(client, rate_minutes=1) == CYCLE_SCHEDULE_NAME


def test_missing_configuration() -> None:
    logger = ListLogger()
    assert _ensure(_client(), logger, target_arn=None) is None
    assert logger.messages("ERROR") == ["missing REMINDER_LAMBDA_ARN or SCHEDULER_ROLE_ARN"]


def test_create_failure_returns_none() -> None:
    client = _client()
    client.get_schedule.side_effect = _NotFound()
    client.create_schedule.side_effect = ClientError(
        {"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "CreateSchedule"
    )
    logger = ListLogger()
    assert _ensure(client, logger) is None
    assert logger.messages("ERROR") == ["create_schedule failed"]
