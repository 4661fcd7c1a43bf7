import os

# Lambda sets AWS_REGION automatically; local dev may rely on AWS_DEFAULT_REGION.
AWS_REGION = (
    os.environ.get("AWS_REGION")
    or os.environ.get("AWS_DEFAULT_REGION")
    or "us-east-1"
)

TABLE_NAME = os.environ.get("TABLE_NAME") or os.environ.get("SCHEDULES_TABLE")
DEADLINE_INDEX_NAME = os.environ.get("DEADLINE_INDEX_NAME", "deadline-index")

DISCORD_API_BASE = os.environ.get("DISCORD_API_BASE", "https://discord.com/api/v10").rstrip("/")
DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "UTC")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

REMINDER_LAMBDA_ARN = os.environ.get("REMINDER_LAMBDA_ARN")
SCHEDULER_ROLE_ARN = os.environ.get("SCHEDULER_ROLE_ARN")
SCHEDULER_GROUP_NAME = os.environ.get("SCHEDULER_GROUP_NAME")
CYCLE_RATE_MINUTES = int(os.environ.get("CYCLE_RATE_MINUTES", "15"))


def require_env() -> None:
    missing = []
    if not TABLE_NAME:
        missing.append("TABLE_NAME")
    if missing:
        raise RuntimeError("Missing required environment variables: " + ", ".join(missing))
