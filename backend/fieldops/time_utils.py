# Overview: Clock and ISO-8601 helpers. All stored timestamps are naive UTC.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(raw: Optional[str]) -> Optional[datetime]:
    """
    Read an ISO-8601 timestamp from request or CLI input.

    Blank input yields None. Offsets (including a trailing "Z") are
    converted to UTC; a value without an offset is taken to be UTC already.
    Raises ValueError on anything fromisoformat rejects.
    """
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    if text[-1] in ("Z", "z"):
        text = f"{text[:-1]}+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp for JSON as second-precision UTC with a "Z" suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"
