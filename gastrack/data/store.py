"""
Bounded per-network time series of fee observations.

Each network gets a deque with a fixed maxlen, so appending at capacity
evicts the oldest observation first.
"""

from collections import deque
from typing import Iterable, Optional

import structlog

from ..errors import TemporalDataError
from .models import Observation

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 96


class TimeSeriesStore:
    """Per-network rolling window of observations in chronological order."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, network_ids: Iterable[str] = ()):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._series: dict[str, deque] = {}

        for network_id in network_ids:
            self._get_series(network_id)

    def _get_series(self, network_id: str) -> deque:
        """Get or create the observation deque for a network."""
        if network_id not in self._series:
            self._series[network_id] = deque(maxlen=self.capacity)
        return self._series[network_id]

    def append(self, network_id: str, observation: Observation) -> None:
        """
        Append an observation to the tail of a network's series.

        Observations with the same timestamp as the tail are accepted
        (duplicate notifications are tolerated).

        Raises:
            TemporalDataError: If the observation is older than the stored tail
        """
        series = self._get_series(network_id)

        if series and observation.timestamp < series[-1].timestamp:
            raise TemporalDataError(
                f"Out-of-order observation for {network_id}: "
                f"{observation.timestamp} < {series[-1].timestamp}",
                timestamp=observation.timestamp,
                expected_timestamp=series[-1].timestamp,
                context={"network_id": network_id},
            )

        evicted = series[0] if len(series) == series.maxlen else None
        series.append(observation)

        if evicted is not None:
            logger.debug(
                "Evicted oldest observation",
                network_id=network_id,
                evicted_timestamp=evicted.timestamp,
                capacity=self.capacity
            )

    def snapshot(self, network_id: str) -> tuple[Observation, ...]:
        """Return a copy of the full ordered series for a network."""
        return tuple(self._series.get(network_id, ()))

    def latest(self, network_id: str) -> Optional[Observation]:
        """Most recent observation, None if the series is empty."""
        series = self._series.get(network_id)
        return series[-1] if series else None

    def size(self, network_id: str) -> int:
        """Number of stored observations for a network."""
        return len(self._series.get(network_id, ()))

    def clear(self, network_id: Optional[str] = None) -> None:
        """Drop stored observations for one network, or all networks."""
        if network_id is None:
            for series in self._series.values():
                series.clear()
        elif network_id in self._series:
            self._series[network_id].clear()

    @property
    def network_ids(self) -> list[str]:
        return list(self._series)
