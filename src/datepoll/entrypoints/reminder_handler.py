from __future__ import annotations

import json
from typing import Optional

from ..infra.aws_clients import table as _table
from ..infra.config import DEADLINE_INDEX_NAME, require_env
from ..infra.discord import DiscordNotifier
from ..infra.environment import OsEnvironment
from ..infra.logger import PrintLogger
from ..infra.store_ddb import DdbResponseRepository, DdbScheduleRepository
from ..infra.tasks import ThreadedTaskQueue
from ..reminders.engine import DeadlineReminderEngine
from ..scheduling.errors import RepositoryError

_tasks = None


def _extract_guild_id(event) -> Optional[str]:
    if isinstance(event, str):
        try:
            event = json.loads(event)
        except ValueError:
            return None

    if not isinstance(event, dict):
        return None

    for key in ("guild_id", "guildId"):
        if event.get(key):
            return str(event[key])

    detail = event.get("detail") if isinstance(event.get("detail"), dict) else None
    if detail:
        for key in ("guild_id", "guildId"):
            if detail.get(key):
                return str(detail[key])

    return None


def _task_queue(logger) -> ThreadedTaskQueue:
    # warm Lambda containers reuse the consumer thread
    global _tasks
    if _tasks is None:
        _tasks = ThreadedTaskQueue(logger)
    return _tasks


def build_engine(env: Optional[OsEnvironment] = None, logger: Optional[PrintLogger] = None):
    require_env()
    env = env or OsEnvironment()
    logger = logger or PrintLogger("reminder")
    tbl = _table()
    schedules = DdbScheduleRepository(tbl, env.get_optional("DEADLINE_INDEX_NAME", DEADLINE_INDEX_NAME))
    responses = DdbResponseRepository(tbl)
    notifier = DiscordNotifier(
        env.get_optional("DISCORD_TOKEN", "") or "",
        schedules,
        responses,
        logger=logger,
        timeout_seconds=env.get_int("NOTIFICATION_TIMEOUT_SECONDS", 10, 1, 60),
    )
    return DeadlineReminderEngine(
        schedules,
        notifier,
        env,
        logger,
        tasks=_task_queue(logger),
    )


def lambda_handler(event, context):
    guild_id = _extract_guild_id(event)
    print(f"[reminder] start guild_id={guild_id}")

    try:
        engine = build_engine()
        report = engine.run_cycle(guild_id)
    except RepositoryError as e:
        print(f"[reminder] repository failure err={repr(e)}")
        return {"statusCode": 500, "body": json.dumps({"ok": False, "error": "repository_error"})}
    except RuntimeError as e:
        print(f"[reminder] configuration failure err={repr(e)}")
        return {"statusCode": 500, "body": json.dumps({"ok": False, "error": str(e)})}

    body = report.as_dict()
    print(f"[reminder] done {' '.join(f'{k}={v}' for k, v in body.items())}")
    return {"statusCode": 200, "body": json.dumps(body)}
