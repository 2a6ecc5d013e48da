from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def default_due_date(days: int) -> date:
    """Invoice due date: `days` calendar days after today (UTC)."""
    return today() + timedelta(days=days)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a due-date style value.

    - None / "" -> None
    - "YYYY-MM-DD" -> date
    - a full ISO-8601 datetime ("...T...", optional "Z") -> its UTC date
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if "T" not in s:
        return date.fromisoformat(s)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def to_utc_z(value: Optional[Union[datetime, date]]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC. Plain dates serialize as YYYY-MM-DD.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        return value.isoformat()
    dt = value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
