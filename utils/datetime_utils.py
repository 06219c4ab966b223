"""Utilities for UTC datetimes and human readable sync timings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime."""

    if not s:
        return None

    value = s.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    if "." in value:
        head, tail = value.split(".", 1)
        if "+" in tail:
            frac, tz = tail.split("+", 1)
            sign = "+"
        elif "-" in tail:
            frac, tz = tail.split("-", 1)
            sign = "-"
        else:
            frac, tz = tail, "00:00"
            sign = "+"
        frac = (frac + "000000")[:6]
        value = f"{head}.{frac}{sign}{tz}"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None

    return ensure_utc(dt)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_last_sync(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Compact "time ago" label used by sync badges."""

    if moment is None:
        return "Never"
    current = ensure_utc(now) or utc_now()
    minutes = int((current - ensure_utc(moment)).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return f"{minutes // 1440}d ago"


def format_elapsed(started_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    if started_at is None:
        return ""
    current = ensure_utc(now) or utc_now()
    seconds = max(0, int((current - ensure_utc(started_at)).total_seconds()))
    minutes = seconds // 60
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


__all__ = [
    "UTC",
    "ensure_utc",
    "format_elapsed",
    "format_last_sync",
    "parse_rfc3339",
    "utc_now",
]
