"""Timestamp helpers shared by the models, codec and sync client."""

from datetime import datetime, timezone
from typing import Any, Optional


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision (the wire format carries milliseconds)."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime at millisecond precision.

    Naive values are interpreted as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return truncate_ms(value.astimezone(timezone.utc))


def now_utc() -> datetime:
    """Current instant, aware UTC, millisecond precision."""
    return ensure_utc(datetime.now(timezone.utc))


def isoformat_z(value: datetime) -> str:
    """Serialize as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant; ``None`` for empty or unparseable input."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None
