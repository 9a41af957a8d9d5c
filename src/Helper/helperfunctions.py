import math
from datetime import datetime, timezone


def parse_float(value) -> float:
    """Parse a numeric API field, returning NaN instead of raising on bad input."""
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def shorten_address(address: str) -> str:
    """0x1234567890abcdef -> 0x1234...cdef"""
    return f"{address[:6]}...{address[-4:]}"


def ms_to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Converts a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def json_safe(value):
    """Recursively replaces NaN/inf floats with None so the payload is valid JSON."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value
