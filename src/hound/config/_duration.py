"""Duration parsing for configuration values.

Durations are written either as a plain number of seconds or as a sequence
of decimal numbers with unit suffixes, such as ``300ms``, ``1.5s`` or
``1h2m3s``.
"""

import math
import re
from typing import Final

_UNITS: Final[dict[str, float]] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # noqa: RUF001 - micro sign
    "μs": 1e-6,  # noqa: RUF001 - greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT: Final = re.compile(
    r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)"  # noqa: RUF001
)


def parse_duration(value: str | float) -> float:
    """Parse a duration into seconds.

    Args:
        value: Number of seconds, or a duration string such as ``2s``,
            ``250ms`` or ``1h30m``. A leading sign is allowed. The string
            ``"0"`` is accepted without a unit.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the value is not a valid duration.
    """
    if isinstance(value, bool):
        msg = f"invalid duration {value!r}"
        raise ValueError(msg)

    if isinstance(value, int | float):
        return float(value)

    text = value.strip()
    if not text:
        msg = "invalid duration ''"
        raise ValueError(msg)

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return 0.0

    # Bare numbers are seconds
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            msg = f"invalid duration {value!r}"
            raise ValueError(msg)
        return sign * seconds

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            msg = f"invalid duration {value!r}"
            raise ValueError(msg)
        number, unit = match.groups()
        total += float(number) * _UNITS[unit]
        pos = match.end()

    if pos == 0:
        msg = f"invalid duration {value!r}"
        raise ValueError(msg)

    return sign * total


def format_duration(seconds: float) -> str:
    """Render seconds as a compact duration string, e.g. ``1.5s`` or ``300ms``."""
    if seconds != 0 and abs(seconds) < 1:
        return f"{seconds * 1000:g}ms"
    return f"{seconds:g}s"
