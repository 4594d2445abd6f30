"""Duration parsing utilities."""

import re

from twag.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> int:
    """Parse duration string to milliseconds. Passthrough if already int."""
    if isinstance(duration, int):
        if duration < 0:
            raise ValueError(f"Invalid duration: {duration!r}")
        return duration

    match = _DURATION_PATTERN.match(duration.strip())
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


def format_duration(ms: int) -> str:
    """Render milliseconds in the largest whole unit, e.g. 120000 -> '2 minutes'."""
    for unit, label in (("d", "day"), ("h", "hour"), ("m", "minute"), ("s", "second")):
        size = _UNITS[unit]
        if ms >= size and ms % size == 0:
            count = ms // size
            return f"{count} {label}{'' if count == 1 else 's'}"
    return f"{ms} ms"
