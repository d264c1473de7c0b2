from __future__ import annotations

from datetime import date, datetime
from typing import Optional


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_iso_datetime(value) -> Optional[datetime]:
    """Accept datetime, ISO string or None (payloads travel as ISO strings)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def try_parse_iso_datetime(value) -> Optional[datetime]:
    """Like parse_iso_datetime, but an unreadable stamp counts as missing."""
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        return None


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def hours_between(start: datetime, end: datetime) -> float:
    """Hours from start to end, rounded to 2 decimals."""
    return round((end - start).total_seconds() / 3600, 2)
