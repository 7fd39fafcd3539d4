"""
Numeric coercion for wire values.

Message envelopes carry numbers in several shapes depending on where they came
from: plain ints, floats, decimal strings (protobuf int64 fields rendered by
`json_format`), and serialized Long objects (`{"low": .., "high": .., "unsigned": ..}`)
from Baileys-style JSON.
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping
from typing import Any


def _from_long(value: Mapping[str, Any]) -> int | None:
    low = value.get("low")
    high = value.get("high")
    if not isinstance(low, int) or not isinstance(high, int):
        return None
    n = ((high & 0xFFFFFFFF) << 32) | (low & 0xFFFFFFFF)
    if not value.get("unsigned") and n & (1 << 63):
        n -= 1 << 64
    return n


def to_int(value: Any) -> int | None:
    """Coerce a number-like wire value to `int`, or `None` if it is not one."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return math.floor(value) if math.isfinite(value) else None
    if isinstance(value, (str, bytes)):
        s = value.decode("ascii", "ignore") if isinstance(value, bytes) else value
        s = s.strip()
        if not s:
            return None
        try:
            return int(s)
        except ValueError:
            pass
        try:
            f = float(s)
        except ValueError:
            return None
        return math.floor(f) if math.isfinite(f) else None
    if isinstance(value, Mapping):
        return _from_long(value)
    to_number = getattr(value, "to_number", None) or getattr(value, "toNumber", None)
    if callable(to_number):
        return to_int(to_number())
    index = getattr(value, "__index__", None)
    if callable(index):
        return int(index())
    return None


def to_unix_seconds(value: Any, *, default: int | None = None) -> int:
    """
    Canonical Unix-seconds timestamp.

    Falls back to `default`, or the current time, when `value` is not number-like.
    """

    n = to_int(value)
    if n is not None:
        return n
    if default is not None:
        return default
    return int(time.time())
