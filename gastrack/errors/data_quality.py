"""
Data quality error classifications for fee and price ingestion.

Every error here affects a single observation or price fetch; callers log
it and continue with the next event.
"""

from typing import Any, Optional


class DataQualityError(Exception):
    """Base class for data quality issues that can be handled gracefully."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class FetchError(DataQualityError):
    """A block header or contract call failed or timed out."""

    def __init__(self, message: str, network_id: Optional[str] = None,
                 operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.network_id = network_id
        self.operation = operation


class MalformedDataError(FetchError):
    """An RPC payload arrived but could not be decoded."""

    def __init__(self, message: str, raw_data: Optional[str] = None,
                 expected_format: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw_data = raw_data
        self.expected_format = expected_format


class PriceValidationError(DataQualityError):
    """Fetched price fell outside the token's plausible range."""

    def __init__(self, message: str, token: Optional[str] = None,
                 value: Optional[float] = None,
                 bounds: Optional[tuple[float, float]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.token = token
        self.value = value
        self.bounds = bounds


class TemporalDataError(DataQualityError):
    """Observation timestamp is older than the stored tail."""

    def __init__(self, message: str, timestamp: Optional[int] = None,
                 expected_timestamp: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timestamp = timestamp
        self.expected_timestamp = expected_timestamp
