"""
Small time helpers shared by the services
"""
from datetime import datetime, timezone
from typing import Optional

# time_drift_seconds is a 32-bit INTEGER column
MAX_DRIFT_SECONDS = 2 ** 31 - 1


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_client_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client-reported ISO-8601 timestamp into naive UTC.
    
    Returns None for missing or unparseable values, and for values whose
    UTC equivalent falls outside the datetime range. Offsets are converted
    to UTC; timestamps without an offset are taken as UTC already.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError):
        return None
    return parsed


def clock_drift_seconds(client_time: Optional[datetime], server_time: datetime) -> Optional[int]:
    """server - client in whole seconds, or None without a usable client time."""
    if client_time is None:
        return None
    drift = round((server_time - client_time).total_seconds())
    if abs(drift) > MAX_DRIFT_SECONDS:
        return None
    return drift
