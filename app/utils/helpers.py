"""Shared utility functions for time handling and input parsing.

utcnow:          single source of "now" for the engine (naive UTC)
as_utc_naive:    normalise caller-supplied datetimes before storage
parse_datetime:  tolerant ISO / DD.MM.YYYY parser for API input
add_days:        due-date arithmetic
iso:             None-safe isoformat for to_dict() payloads
"""
import logging
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    All engine timestamps are stored naive-UTC; SQLite drops tzinfo on
    read, so mixing aware and naive values would make comparisons fail.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime | date | None) -> datetime | None:
    """Convert an aware datetime (or a plain date) to naive UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def add_days(start: datetime, days: int) -> datetime:
    """Return ``start`` moved forward by ``days`` whole days."""
    return start + timedelta(days=days)


def parse_datetime(value):
    """Parse a datetime string (ISO or DD.MM.YYYY) to a naive UTC datetime.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS[+offset|Z]
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, (date, datetime)):
        return as_utc_naive(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc_naive(datetime.fromisoformat(text))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y")
    except (ValueError, TypeError):
        logger.debug("Unparseable datetime input: %r", value)
        return None


def iso(value: datetime | None) -> str | None:
    """isoformat() or None."""
    return value.isoformat() if value else None
