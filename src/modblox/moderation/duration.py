"""
Short duration strings such as ``30m``, ``12h``, ``2w`` or ``3mo``.

A duration string is one or more digits followed by exactly one unit and
nothing else; matching is case-insensitive. Months are 30 days and years are
365 days. This is an approximation, not calendar arithmetic.

Each command declares the units it accepts:

- ban: ``d w mo y``
- mute: ``h d w mo y``
- timeout: ``m h d``

An empty option means "permanent" and is handled by :func:`parse_optional`;
a zero amount is always rejected.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, Optional

from modblox.datatypes.action_datatypes import ActionKind
from modblox.errors import ParseError

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS
MONTH_MS = 30 * DAY_MS
YEAR_MS = 365 * DAY_MS

UNIT_MS: Dict[str, int] = {
    "m": MINUTE_MS,
    "h": HOUR_MS,
    "d": DAY_MS,
    "w": WEEK_MS,
    "mo": MONTH_MS,
    "y": YEAR_MS,
}

ALL_UNITS: FrozenSet[str] = frozenset(UNIT_MS)
BAN_UNITS: FrozenSet[str] = frozenset({"d", "w", "mo", "y"})
MUTE_UNITS: FrozenSet[str] = frozenset({"h", "d", "w", "mo", "y"})
TIMEOUT_UNITS: FrozenSet[str] = frozenset({"m", "h", "d"})

# Platform ceiling for a native member timeout.
TIMEOUT_CEILING_MS = 28 * DAY_MS

_MAX_MS = 2**63 - 1
_DURATION_RE = re.compile(r"([0-9]+)(mo|[mhdwy])", re.IGNORECASE)

# Coarsest first; used by format_duration.
_DISPLAY_UNITS = (
    ("y", "year", YEAR_MS),
    ("mo", "month", MONTH_MS),
    ("w", "week", WEEK_MS),
    ("d", "day", DAY_MS),
    ("h", "hour", HOUR_MS),
    ("m", "minute", MINUTE_MS),
)


def _unit_list(units: Iterable[str]) -> str:
    order = list(UNIT_MS)
    return ", ".join(sorted(units, key=order.index))


def parse(text: str, units: Iterable[str] = ALL_UNITS) -> int:
    """Parse ``text`` into milliseconds.

    Args:
        text: Duration string, e.g. ``"7d"``.
        units: Units the caller accepts.

    Returns:
        The duration in milliseconds, always positive.

    Raises:
        ParseError: If ``text`` does not match the grammar, uses a unit
            outside ``units``, has a zero amount, or overflows 64 bits.
    """
    allowed = frozenset(units)
    match = _DURATION_RE.fullmatch(text or "")
    if match is None:
        raise ParseError(
            f"Invalid duration {text!r}. Use a number followed by one of: {_unit_list(allowed)}"
        )

    amount = int(match.group(1))
    unit = match.group(2).lower()

    if unit not in allowed:
        hint = " (use 'mo' for months)" if unit == "m" and "mo" in allowed else ""
        raise ParseError(
            f"Unit {unit!r} is not allowed here{hint}. Allowed units: {_unit_list(allowed)}"
        )
    if amount == 0:
        raise ParseError("Duration must be greater than zero")

    value = amount * UNIT_MS[unit]
    if value > _MAX_MS:
        raise ParseError(f"Duration {text!r} is too large")
    return value


def parse_optional(text: Optional[str], units: Iterable[str] = ALL_UNITS) -> Optional[int]:
    """Like :func:`parse` but an empty or missing string means permanent (None)."""
    if text is None or text == "":
        return None
    return parse(text, units)


def format_duration(ms: int, compact: bool = False) -> str:
    """Render milliseconds using the coarsest unit whose magnitude is at least one.

    The result is truncated toward zero, so it never shows a unit larger than
    the true magnitude. ``compact`` produces parser-compatible output such as
    ``2w`` instead of ``2 weeks``.
    """
    if ms < 0:
        raise ParseError("Duration cannot be negative")

    for short, name, factor in _DISPLAY_UNITS:
        if ms >= factor:
            amount = ms // factor
            if compact:
                return f"{amount}{short}"
            return f"{amount} {name}{'s' if amount != 1 else ''}"

    seconds = ms // 1000
    if compact:
        return f"{seconds}s"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def format_optional(ms: Optional[int]) -> str:
    """Human label for an optional duration; None reads as ``Permanent``."""
    if ms is None:
        return "Permanent"
    return format_duration(ms)


def select_mute_kind(duration: Optional[int]) -> ActionKind:
    """Choose between a native timeout and a role mute.

    Durations up to :data:`TIMEOUT_CEILING_MS` become a timeout; longer or
    permanent ones become a mute.
    """
    if duration is not None and duration <= TIMEOUT_CEILING_MS:
        return ActionKind.TIMEOUT
    return ActionKind.MUTE
