import re
from typing import Optional

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_hhmm(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    m = _HHMM.match(value or "")
    if not m:
        raise ValueError(f"invalid time: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"invalid time: {value!r}")
    return hours * 60 + minutes


def format_minutes(total: int) -> str:
    total %= 24 * 60
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_hhmm(value: Optional[str]) -> Optional[str]:
    """``"9:05"`` -> ``"09:05"``; unparseable values become ``None``."""
    if value is None:
        return None
    try:
        return format_minutes(parse_hhmm(str(value)))
    except ValueError:
        return None


def add_minutes(start: str, minutes: int) -> str:
    return format_minutes(parse_hhmm(start) + minutes)


def minutes_between(start: str, end: str) -> int:
    return parse_hhmm(end) - parse_hhmm(start)


def later_of(a: str, b: str) -> str:
    return a if parse_hhmm(a) >= parse_hhmm(b) else b
