"""Time helpers. Everything stored and computed is naive UTC."""
from datetime import datetime
from typing import Optional

import pytz


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (with optional 'Z' suffix) to naive UTC."""
    if not value:
        return None
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
