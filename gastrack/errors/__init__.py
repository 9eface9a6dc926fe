"""
Error classification for the ingestion, price and connection paths.

Data quality errors cover a single skipped observation or price fetch;
system failures cover lost or unavailable chain connections.
"""

from .data_quality import (
    DataQualityError,
    FetchError,
    MalformedDataError,
    PriceValidationError,
    TemporalDataError,
)
from .system_failures import (
    ChainConnectionError,
    SystemFailureError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "FetchError",
    "MalformedDataError",
    "PriceValidationError",
    "TemporalDataError",
    # System Failures
    "ChainConnectionError",
    "SystemFailureError",
]
