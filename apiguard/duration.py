"""Parsing of human-readable rate-limit windows into ``timedelta``."""
import re
from datetime import timedelta

_UNITS = {
    "s": "seconds", "sec": "seconds", "second": "seconds",
    "m": "minutes", "min": "minutes", "minute": "minutes",
    "h": "hours", "hr": "hours", "hour": "hours",
    "d": "days", "day": "days",
    "w": "weeks", "week": "weeks",
}

_PATTERN = re.compile(r"^-?\s*(\d+(?:\.\d+)?)\s*([a-z]+)$")


def _unit(word: str) -> str | None:
    if word in _UNITS:
        return _UNITS[word]
    # Plurals only for spelled-out units, so "ms" is not read as minutes.
    if word.endswith("s") and len(word) > 2:
        return _UNITS.get(word[:-1])
    return None


def parse_duration(value: object) -> timedelta:
    """Turn ``value`` into a positive ``timedelta``.

    Accepts a ``timedelta``, a number of seconds, or strings such as
    ``"1 minute"``, ``"5 minutes"``, ``"90s"`` or ``"2 hours"``. A leading
    ``-`` is tolerated since windows are always counted backwards from now.
    Raises ``ValueError`` for anything else, including zero, negative and
    out-of-range spans.
    """
    try:
        if isinstance(value, timedelta):
            delta = value
        elif isinstance(value, bool):
            raise ValueError(f"Invalid duration: {value!r}")
        elif isinstance(value, (int, float)):
            delta = timedelta(seconds=value)
        elif isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit():
                delta = timedelta(seconds=int(text))
            else:
                match = _PATTERN.match(text)
                unit = _unit(match.group(2)) if match else None
                if unit is None:
                    raise ValueError(f"Invalid duration: {value!r}")
                delta = timedelta(**{unit: float(match.group(1))})
        else:
            raise ValueError(f"Invalid duration: {value!r}")
    except OverflowError as exc:
        raise ValueError(f"Invalid duration: {value!r}") from exc

    if delta <= timedelta(0):
        raise ValueError(f"Duration must be positive: {value!r}")
    return delta
