"""
Date helpers.

Timestamps are stored as naive UTC datetimes; providers send ISO-8601
strings with offsets (Mercado Pago) or Unix epochs (Stripe).
"""
from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are returned as-is."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_provider_datetime(value: Optional[Union[str, int, float]]) -> Optional[datetime]:
    """
    Parse a provider timestamp into a naive UTC datetime.

    Args:
        value: ISO-8601 string (e.g. '2025-03-01T10:00:00.000-03:00'),
            Unix timestamp in seconds, or None.

    Returns:
        Naive UTC datetime, or None when the value is empty or unparseable.
    """
    if value in (None, ''):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
