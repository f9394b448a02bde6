"""punchlist_shared.serialization — Value coercion and JSON encoding helpers."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any


def _to_int(value: Any) -> int:
    """Coerce a backend numeric field to int; missing or unparseable is 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return 0


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    if isinstance(obj, (dt.datetime, dt.date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
