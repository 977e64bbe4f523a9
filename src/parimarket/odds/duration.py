"""Market duration strings ("30minutes", "5h", "2d") to absolute deadlines."""

from __future__ import annotations

import re

from parimarket.errors import ValidationError

_DURATION_RE = re.compile(r"([0-9]+)(minutes?|hours?|days?|[mhd])", re.IGNORECASE)

_MINUTE_MS = 60 * 1000
_UNIT_MS = {
    "m": _MINUTE_MS,
    "minute": _MINUTE_MS,
    "minutes": _MINUTE_MS,
    "h": 60 * _MINUTE_MS,
    "hour": 60 * _MINUTE_MS,
    "hours": 60 * _MINUTE_MS,
    "d": 24 * 60 * _MINUTE_MS,
    "day": 24 * 60 * _MINUTE_MS,
    "days": 24 * 60 * _MINUTE_MS,
}

MAX_DURATION_MS = 365 * 24 * 60 * _MINUTE_MS


def parse_duration(duration: str) -> int:
    """Return the duration in milliseconds. Raises ValidationError on any other shape."""
    match = _DURATION_RE.fullmatch(duration or "")
    if not match:
        raise ValidationError(
            f"invalid duration {duration!r}; expected e.g. '10minutes', '5hours', '1days', '72h', '45m', '2d'"
        )
    value = int(match.group(1))
    if value <= 0:
        raise ValidationError("duration must be positive")
    ms = value * _UNIT_MS[match.group(2).lower()]
    if ms > MAX_DURATION_MS:
        raise ValidationError(f"duration {duration!r} exceeds the 365 day maximum")
    return ms


def deadline_from_duration(duration: str, now_ms: int) -> int:
    return now_ms + parse_duration(duration)
