"""
Logging configuration and utilities for the gastrack engine.
"""
from .config import (
    configure_logging,
    get_ingest_logger,
    get_logger,
    get_price_logger,
    log_connection_transition,
    log_price_decision,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_ingest_logger",
    "get_price_logger",
    "log_connection_transition",
    "log_price_decision",
]
