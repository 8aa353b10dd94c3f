"""
Input normalization shared by request models
"""
from datetime import datetime, timezone


def naive_utc(value: datetime | None) -> datetime | None:
    """Columns store naive UTC; clients may send offsets"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
