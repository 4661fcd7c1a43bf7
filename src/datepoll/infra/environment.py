from __future__ import annotations

import os
from typing import Mapping, Optional

from ..scheduling.ports import EnvironmentPort


class OsEnvironment(EnvironmentPort):
    """Reads settings from the process environment, or from a mapping in tests."""

    def __init__(self, source: Optional[Mapping[str, str]] = None) -> None:
        self._source = source if source is not None else os.environ

    def get(self, key: str) -> Optional[str]:
        value = self._source.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None
