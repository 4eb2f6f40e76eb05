from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_api_datetime(value: Any) -> datetime | None:
    """
    Best-effort parser for game API timestamps into tz-aware UTC datetimes.

    Supports:
      - ISO strings: "2025-09-07T20:20:00.123Z" / "+00:00"
      - unix epoch milliseconds (int/float), as stored by the feed
      - numeric strings holding epoch milliseconds

    Returns None instead of raising on bad input.
    """
    if isinstance(value, bool) or value in (None, ""):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        v = value.strip()
        if v.isdigit():
            return parse_api_datetime(int(v))
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(v))
        except ValueError:
            return None

    return None


def seconds_between(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None or end < start:
        return None
    return (end - start).total_seconds()
