"""Duration parsing for configuration values.

Queue delays, lease timeouts, poll intervals, and the reset-token lifetime are
all written as durations in ``config.yaml``. Both compact human forms
(``500ms``, ``3s``, ``15m``, ``1h30m``) and ISO-8601 (``PT15M``) are accepted.
Bare numbers are read as seconds.
"""

import re
from typing import Union


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_HUMAN_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)")
_ISO_PATTERN = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration to seconds.

    Args:
        value: Duration string, or a number of seconds

    Returns:
        Duration in seconds (may be fractional)

    Raises:
        DurationParseError: If the value is empty, zero, negative, or malformed

    Examples:
        >>> parse_duration("15m")
        900.0
        >>> parse_duration("PT15M")
        900.0
        >>> parse_duration("500ms")
        0.5
    """
    if isinstance(value, bool):
        raise DurationParseError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            raise DurationParseError("Duration string cannot be empty")

        if re.fullmatch(r"\d+(?:\.\d+)?", text):
            seconds = float(text)
        elif text.upper().startswith("P"):
            seconds = _parse_iso8601(text)
        else:
            seconds = _parse_human(text)

    if seconds <= 0:
        raise DurationParseError(f"Duration must be positive: {value!r}")

    return seconds


def _parse_iso8601(text: str) -> float:
    match = _ISO_PATTERN.match(text.upper())
    if not match or text.upper() in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{text}'. "
            "Expected format like 'P2D', 'PT1H30M', 'PT15M', or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()
    total = 0.0
    if days:
        total += int(days) * _UNIT_SECONDS["d"]
    if hours:
        total += int(hours) * _UNIT_SECONDS["h"]
    if minutes:
        total += int(minutes) * _UNIT_SECONDS["m"]
    if seconds:
        total += float(seconds)
    return total


def _parse_human(text: str) -> float:
    lowered = re.sub(r"\s+", "", text.lower())
    parts = _HUMAN_PART.findall(lowered)

    # Every character must belong to a number+unit pair
    if not parts or "".join(num + unit for num, unit in parts) != lowered:
        raise DurationParseError(
            f"Invalid duration format: '{text}'. "
            "Use digits with units ms, s, m, h, d (e.g. '3s', '15m', '1h30m')"
        )

    return sum(float(num) * _UNIT_SECONDS[unit] for num, unit in parts)


def humanize_duration(seconds: float) -> str:
    """Render seconds as the largest whole unit, for user-facing text.

    Args:
        seconds: Duration in seconds

    Returns:
        Text such as "15 minutes", "1 hour", or "30 seconds"
    """
    whole = int(seconds)
    for unit_seconds, label in ((86400, "day"), (3600, "hour"), (60, "minute")):
        if whole >= unit_seconds and whole % unit_seconds == 0:
            count = whole // unit_seconds
            return f"{count} {label}{'s' if count != 1 else ''}"
    return f"{whole} second{'s' if whole != 1 else ''}"
