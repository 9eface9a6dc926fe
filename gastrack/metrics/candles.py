"""OHLC candle aggregation over fee observations"""

from collections.abc import Iterable
from typing import Optional

from ..data.models import Candle, Observation

TIMEFRAMES = {
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "30m": 1_800_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}

VALUE_FIELDS = ("total_fee", "base_fee", "priority_fee")


class CandleBuilder:
    """Accumulates observations belonging to one bucket"""

    def __init__(self, bucket_start: int):
        self.bucket_start = bucket_start
        self.open: Optional[float] = None
        self.high: Optional[float] = None
        self.low: Optional[float] = None
        self.close: Optional[float] = None
        self.count = 0

        # Timestamps of the current open/close samples
        self._open_ts: Optional[int] = None
        self._close_ts: Optional[int] = None

    def add(self, timestamp: int, value: float) -> None:
        """Add one sample to the bucket"""
        if self.open is None:
            self.open = self.high = self.low = self.close = value
            self._open_ts = self._close_ts = timestamp
            self.count = 1
            return

        self.high = max(self.high, value)
        self.low = min(self.low, value)

        # Strict comparison keeps the first sample among equal earliest timestamps
        if timestamp < self._open_ts:
            self.open = value
            self._open_ts = timestamp

        # Non-strict comparison keeps the last sample among equal latest timestamps
        if timestamp >= self._close_ts:
            self.close = value
            self._close_ts = timestamp

        self.count += 1

    def is_empty(self) -> bool:
        return self.open is None

    def build(self) -> Candle:
        """Build the final Candle object"""
        if self.is_empty():
            raise ValueError("Cannot build empty candle")

        return Candle(
            bucket_start=self.bucket_start,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            count=self.count,
        )


def bucket_start(timestamp: int, interval_ms: int) -> int:
    """Start of the bucket containing timestamp"""
    return (timestamp // interval_ms) * interval_ms


def aggregate(
    observations: Iterable[Observation],
    interval_ms: int,
    field: str = "total_fee",
) -> list[Candle]:
    """
    Aggregate observations into OHLC candles.

    Buckets with no observations produce no candle. Holds no state between
    calls; the full sequence is recomputed each time.

    Args:
        observations: Observation sequence, normally in chronological order
        interval_ms: Bucket width in milliseconds
        field: Observation attribute to summarize

    Returns:
        Candles sorted ascending by bucket_start
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    if field not in VALUE_FIELDS:
        raise ValueError(f"Unknown value field: {field}")

    builders: dict[int, CandleBuilder] = {}

    for observation in observations:
        start = bucket_start(observation.timestamp, interval_ms)
        builder = builders.get(start)
        if builder is None:
            builder = builders[start] = CandleBuilder(start)
        builder.add(observation.timestamp, getattr(observation, field))

    return [builders[start].build() for start in sorted(builders)]


def timeframe_to_ms(timeframe: str) -> int:
    """Resolve a named timeframe such as "15m" to milliseconds"""
    try:
        return TIMEFRAMES[timeframe]
    except KeyError:
        raise ValueError(
            f"Unknown timeframe {timeframe!r}, expected one of {', '.join(TIMEFRAMES)}"
        ) from None


def aggregate_timeframe(
    observations: Iterable[Observation],
    timeframe: str = "15m",
    field: str = "total_fee",
) -> list[Candle]:
    """Aggregate observations using a named timeframe"""
    return aggregate(observations, timeframe_to_ms(timeframe), field)
