"""Duration strings such as ``24h``, ``1h30m`` or ``300ms``."""

import re
from datetime import timedelta

# Nanoseconds per unit
UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

# Largest representable duration, as in Go
MAX_DURATION_NS = 2**63 - 1

_SEGMENT = re.compile(r"(\d*)(?:\.(\d*))?(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string into a timedelta.

    A duration is an optionally signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix. Valid units are ``ns``, ``us``
    (or ``µs``), ``ms``, ``s``, ``m`` and ``h``. A bare ``"0"`` is zero.
    Whitespace is not allowed and the total may not exceed ``2**63 - 1``
    nanoseconds (about 2562047h). Sub-microsecond remainders round away
    from zero, so ``"500ns"`` is a positive duration.

    Args:
        value: Duration string

    Returns:
        timedelta: Parsed duration

    Raises:
        ValueError: If the string is not a valid duration
    """
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value
    original = value
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration: {original!r}")

    total_ns = 0
    position = 0
    while position < len(text):
        match = _SEGMENT.match(text, position)
        if not match:
            raise ValueError(f"invalid duration: {original!r}")

        whole, fraction, unit = match.groups()
        if not whole and not fraction:
            raise ValueError(f"invalid duration: {original!r}")

        scale = UNITS[unit]
        total_ns += int(whole or "0") * scale
        if fraction:
            total_ns += int(fraction) * scale // (10 ** len(fraction))

        if total_ns > MAX_DURATION_NS:
            raise ValueError(f"invalid duration: {original!r} (out of range)")

        position = match.end()

    microseconds = -(-total_ns // 1_000)
    return timedelta(microseconds=-microseconds if negative else microseconds)


def format_duration(delta: timedelta) -> str:
    """
    Format a timedelta as a duration string (``1h30m0s``, ``1.5s``, ``250ms``).

    Args:
        delta: Duration to format

    Returns:
        str: Formatted duration
    """
    total_us = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1_000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        return f"{sign}{_trim(total_us, 1_000)}ms"

    hours, remainder = divmod(total_us, 3600 * 1_000_000)
    minutes, remainder = divmod(remainder, 60 * 1_000_000)
    seconds = _trim(remainder, 1_000_000)

    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _trim(value: int, scale: int) -> str:
    """Render value/scale as a decimal without trailing zeros."""
    whole, fraction = divmod(value, scale)
    if not fraction:
        return str(whole)
    digits = str(fraction).rjust(len(str(scale)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"
