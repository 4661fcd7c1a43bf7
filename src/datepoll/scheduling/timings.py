from __future__ import annotations

import re
from datetime import timedelta
from typing import List, Optional

TIMING_RE = re.compile(r"(\d+)([dhm])")

DEFAULT_REMINDER_TIMINGS: List[str] = ["3d", "1d", "8h"]
DEFAULT_REMINDER_MENTIONS: List[str] = ["@here"]

# The deadline scan reads at least this far ahead, so no accepted token can
# come due outside the window.
MAX_TIMING_OFFSET = timedelta(days=7)

_UNIT_MINUTES = {"d": 24 * 60, "h": 60, "m": 1}

_UNIT_LABELS = {
    "d": ("day", "days"),
    "h": ("hour", "hours"),
    "m": ("minute", "minutes"),
}


def parse_timing(token: str) -> Optional[timedelta]:
    """
    Offset before the deadline encoded by a token like "3d", "8h" or "30m".
    Returns None for malformed tokens and for offsets beyond MAX_TIMING_OFFSET.
    """
    m = TIMING_RE.fullmatch(token or "")
    if not m:
        return None
    minutes = int(m.group(1)) * _UNIT_MINUTES[m.group(2)]
    if minutes > MAX_TIMING_OFFSET.total_seconds() // 60:
        return None
    return timedelta(minutes=minutes)


def is_valid_timing(token: str) -> bool:
    return parse_timing(token) is not None


def timing_label(token: str) -> str:
    m = TIMING_RE.fullmatch(token or "")
    if not m:
        return token
    value = int(m.group(1))
    singular, plural = _UNIT_LABELS[m.group(2)]
    return f"{value} {singular if value == 1 else plural}"


def effective_timings(timings: Optional[List[str]]) -> List[str]:
    # an empty list means the schedule never customised its reminders
    return list(timings) if timings else list(DEFAULT_REMINDER_TIMINGS)
