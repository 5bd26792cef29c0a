"""Millisecond clock helpers.

The ledger and the leveling engine work in integer unix milliseconds; these
helpers convert at the edges where Discord wants datetimes or seconds.
"""

from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Callable

from modblox.errors import ValidationError

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in unix milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    """Convert unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to unix milliseconds; naive values are treated as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def ensure_timestamp(value: object, name: str = "timestamp") -> int:
    """Validate a millisecond timestamp and return it as an int.

    Raises:
        ValidationError: For bools, non-numbers, NaN, infinities, and negative values.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number of milliseconds, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value!r}")
    return int(value)
