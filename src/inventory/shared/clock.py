"""Timestamp helpers."""

from datetime import UTC, datetime


def as_naive_utc(value: datetime | None) -> datetime | None:
    """Drop the timezone after converting to UTC.

    Persisted timestamps may come back with or without tzinfo depending on
    the provider; comparisons always go through this.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
