from __future__ import annotations

import json

from ..infra.logger import PrintLogger
from ..infra.trigger import ensure_cycle_schedule


def lambda_handler(event, context):
    """Deploy-time hook: make sure the periodic reminder cycle is scheduled."""
    logger = PrintLogger("trigger")
    print("[trigger] start")

    name = ensure_cycle_schedule(logger)
    if not name:
        return {"statusCode": 500, "body": json.dumps({"ok": False, "error": "schedule_not_created"})}

    return {"statusCode": 200, "body": json.dumps({"ok": True, "schedule": name})}
