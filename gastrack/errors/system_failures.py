"""
System failure error classifications for chain connectivity.

These are not retried automatically; the affected network stays FAILED or
DISCONNECTED until connect() is called again.
"""

from typing import Any, Optional


class SystemFailureError(Exception):
    """Base class for failures that need an explicit reconnect."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class ChainConnectionError(SystemFailureError):
    """Head subscription could not be established or was lost."""

    def __init__(self, message: str, network_id: Optional[str] = None,
                 endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.network_id = network_id
        self.endpoint = endpoint
