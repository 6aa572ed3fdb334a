import time
from datetime import date, datetime, timezone
from typing import Any, Optional, Tuple


def now_ms() -> int:
    """Current time as epoch milliseconds (the record store timestamp format)."""
    return int(time.time() * 1000)


def parse_date(value: Any) -> Optional[date]:
    """Coerce stored or submitted date values into ``date``.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` (or full ISO) strings and
    epoch-millisecond numbers written by older clients. Empty values give ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid date: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date()
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return datetime.fromisoformat(text).date()
    raise ValueError(f"Invalid date: {value!r}")


def calculate_age(birth_date: Any, today: Optional[date] = None) -> Optional[Tuple[int, int]]:
    """Age as (years, months) of completed months, or None for missing/invalid input."""
    try:
        born = parse_date(birth_date)
    except ValueError:
        return None
    if born is None:
        return None
    today = today or date.today()
    total_months = (today.year - born.year) * 12 + (today.month - born.month)
    if today.day < born.day:
        total_months -= 1
    if total_months < 0:
        return None
    return total_months // 12, total_months % 12


def format_date(value: Any, fmt: str = "%b %d, %Y") -> str:
    """Format a date for display; empty string when missing or invalid."""
    try:
        parsed = parse_date(value)
    except ValueError:
        return ""
    return parsed.strftime(fmt) if parsed else ""


def format_date_for_input(value: Any) -> str:
    return format_date(value, "%Y-%m-%d")
