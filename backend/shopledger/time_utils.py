from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def now_z() -> str:
    """Document timestamp for createdAt/updatedAt fields."""
    return to_utc_z(utcnow())


def parse_business_date(value) -> str:
    """
    Normalize a business date (saleDate, purchaseDate) to "YYYY-MM-DD".

    - None / "" -> today (UTC)
    - date / datetime -> its date part
    - "YYYY-MM-DD" or any ISO-8601 datetime string -> its date part

    Raises ValueError on anything else.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return utcnow().date().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s).isoformat()
        except ValueError:
            dt = parse_iso_datetime(s)
            return dt.date().isoformat()
    raise ValueError("invalid date")
