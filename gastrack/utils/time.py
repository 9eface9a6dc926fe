"""
Time helpers for block time vs wall-clock time handling.

Everything inside the engine is expressed as integer epoch milliseconds;
conversion to datetimes happens only at the edges (logging, consumers).
"""

import time
from datetime import datetime, timezone
from typing import Optional

MS_PER_SECOND = 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def block_time_to_ms(block_timestamp: int) -> int:
    """
    Convert a block header timestamp (seconds) to epoch milliseconds.

    Args:
        block_timestamp: Unix timestamp in seconds as reported by the chain

    Returns:
        Timestamp in milliseconds
    """
    return int(block_timestamp) * MS_PER_SECOND


def ms_to_datetime(timestamp_ms: int) -> datetime:
    """Convert epoch milliseconds to a UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / MS_PER_SECOND, tz=timezone.utc)


def format_ms(timestamp_ms: Optional[int]) -> Optional[str]:
    """
    Format epoch milliseconds as ISO8601 for logging.

    Returns None for missing or zero timestamps (never updated).
    """
    if not timestamp_ms:
        return None
    return ms_to_datetime(timestamp_ms).isoformat()


def age_seconds(timestamp_ms: int, reference_ms: Optional[int] = None) -> float:
    """
    Seconds elapsed between a timestamp and a reference time.

    Args:
        timestamp_ms: Earlier timestamp in milliseconds
        reference_ms: Reference time, defaults to now

    Returns:
        Elapsed seconds (negative if timestamp is in the future)
    """
    if reference_ms is None:
        reference_ms = now_ms()
    return (reference_ms - timestamp_ms) / MS_PER_SECOND
