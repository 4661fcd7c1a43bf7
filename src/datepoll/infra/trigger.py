from __future__ import annotations

import json
from typing import Optional

from botocore.exceptions import ClientError

from ..scheduling.ports import LoggerPort
from .aws_clients import scheduler as _scheduler
from .config import (
    CYCLE_RATE_MINUTES,
    REMINDER_LAMBDA_ARN,
    SCHEDULER_GROUP_NAME,
    SCHEDULER_ROLE_ARN,
)

CYCLE_SCHEDULE_NAME = "datepoll-deadline-cycle"


def ensure_cycle_schedule(
    logger: LoggerPort,
    client=None,
    rate_minutes: int = CYCLE_RATE_MINUTES,
    target_arn: Optional[str] = REMINDER_LAMBDA_ARN,
    role_arn: Optional[str] = SCHEDULER_ROLE_ARN,
    group: Optional[str] = SCHEDULER_GROUP_NAME,
) -> Optional[str]:
    """
    Make sure an EventBridge Scheduler rule invokes the reminder handler
    every ``rate_minutes``. Returns the schedule name, or None when it could
    not be created.
    """
    if not target_arn or not role_arn:
        logger.error("missing REMINDER_LAMBDA_ARN or SCHEDULER_ROLE_ARN")
        return None

    client = client or _scheduler()
    group = group or "default"
    name = CYCLE_SCHEDULE_NAME
    rate = max(1, int(rate_minutes))
    expression = f"rate({rate} minute{'s' if rate != 1 else ''})"

    try:
        client.get_schedule(Name=name, GroupName=group)
        logger.info("cycle schedule exists", name=name, group=group)
        return name
    except client.exceptions.ResourceNotFoundException:
        pass
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code != "ResourceNotFoundException":
            logger.error("get_schedule failed", e, name=name)
            return None

    try:
        client.create_schedule(
            Name=name,
            GroupName=group,
            ScheduleExpression=expression,
            FlexibleTimeWindow={"Mode": "OFF"},
            Target={
                "Arn": target_arn,
                "RoleArn": role_arn,
                "Input": json.dumps({"source": "datepoll.cycle"}),
            },
        )
        logger.info("cycle schedule created", name=name, expression=expression)
        return name
    except client.exceptions.ConflictException:
        logger.info("cycle schedule already exists", name=name)
        return name
    except ClientError as e:
        logger.error("create_schedule failed", e, name=name)
        return None
