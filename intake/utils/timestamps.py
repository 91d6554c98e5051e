"""
Timestamp helpers.

MongoDB hands back naive UTC datetimes with millisecond precision, so every
timestamp in this project is naive UTC and is truncated to milliseconds
before it is compared or written to a sheet.
"""

from datetime import datetime, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Current UTC time, truncated to what MongoDB stores."""
    return truncate_ms(datetime.utcnow())


def truncate_ms(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_sheet_timestamp(value: Optional[datetime]) -> str:
    """Format a datetime the way sync rows carry it: 2025-01-31T10:20:30.123Z"""
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_sheet_timestamp(text: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a sheet cell.
    Returns None when the cell is empty or unparseable.
    """
    if not text or not str(text).strip():
        return None
    text = str(text).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return truncate_ms(value)


def format_short_date(value: Optional[datetime]) -> str:
    """DD/MM/YY, used by the manual export sheet."""
    if value is None:
        return ""
    return value.strftime("%d/%m/%y")
