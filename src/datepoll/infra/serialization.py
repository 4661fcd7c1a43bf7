from __future__ import annotations

from decimal import Decimal
from typing import Any


def to_ddb_safe(x: Any) -> Any:
    """Convert floats to Decimal recursively for DynamoDB compatibility."""
    if isinstance(x, float):
        return Decimal(str(x))
    if isinstance(x, dict):
        return {k: to_ddb_safe(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [to_ddb_safe(v) for v in x]
    return x


def from_ddb(x: Any) -> Any:
    """Turn DynamoDB Decimals back into int/float and string sets into Python sets."""
    if isinstance(x, Decimal):
        return int(x) if x == x.to_integral_value() else float(x)
    if isinstance(x, dict):
        return {k: from_ddb(v) for k, v in x.items()}
    if isinstance(x, list):
        return [from_ddb(v) for v in x]
    if isinstance(x, set):
        return {from_ddb(v) for v in x}
    return x


def ddb_clean(item: Any) -> Any:
    """
    Remove dict keys whose values are None or empty collections.
    Recurses into nested dicts/lists while preserving list ordering.
    DynamoDB rejects empty string sets, so empty sets are dropped too.
    """
    if isinstance(item, dict):
        cleaned = {}
        for k, v in item.items():
            v_clean = ddb_clean(v)
            if v_clean is None:
                continue
            if isinstance(v_clean, (dict, list, tuple, set)) and len(v_clean) == 0:
                continue
            cleaned[k] = v_clean
        return cleaned
    if isinstance(item, (list, tuple)):
        return [ddb_clean(v) for v in item]
    return item
