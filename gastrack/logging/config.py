"""
Centralized logging configuration for the gastrack engine.

All components log through structlog using this configuration so that
connection, ingestion and price events share one structured format.
"""
import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure structlog for the engine.

    JSON output renders exceptions as structured tracebacks; console output
    leaves them to the console renderer and only colors a terminal.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON lines; otherwise human-readable
        include_timestamp: Include a UTC ISO timestamp
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors, run before rendering
        stream: Output stream (default stdout)
    """
    log_level = getattr(logging, level.upper())
    stream = stream or sys.stdout

    logging.basicConfig(level=log_level, stream=stream, format="%(message)s")
    # aiohttp stays at INFO or above
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.INFO))

    processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_ingest_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for block ingestion and connection handling.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger for the ingestion path
    """
    return structlog.get_logger(name, subsystem="ingestion")


def get_price_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for oracle price polling.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger for price decisions
    """
    return structlog.get_logger(name, subsystem="price_feed")


def log_connection_transition(
    logger: FilteringBoundLogger,
    network_id: str,
    from_status: str,
    to_status: str,
    reason: Optional[str] = None,
) -> None:
    """
    Log a connection status change with standardized format.

    Args:
        logger: Structlog logger instance
        network_id: Network whose connection changed
        from_status: Previous connection status
        to_status: New connection status
        reason: Failure or teardown reason, if any
    """
    bound_logger = logger.bind(
        network_id=network_id,
        from_status=from_status,
        to_status=to_status,
    )

    if reason:
        bound_logger = bound_logger.bind(reason=reason)

    if to_status == "failed":
        bound_logger.error("Connection status changed")
    elif reason and to_status == "disconnected":
        bound_logger.warning("Connection status changed")
    else:
        bound_logger.info("Connection status changed")


def log_price_decision(
    logger: FilteringBoundLogger,
    token: str,
    accepted: bool,
    value: Optional[float],
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a price accept/reject decision with standardized format.

    Args:
        logger: Structlog logger instance
        token: Token symbol
        accepted: Whether the fetched value became the active price
        value: Fetched value (None if the fetch itself failed)
        reason: Detailed reason for the decision
        context: Additional context data
    """
    bound_logger = logger.bind(
        token=token,
        price_result="ACCEPT" if accepted else "REJECT",
        value=value,
        reason=reason,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if accepted:
        bound_logger.info("Price decision")
    else:
        bound_logger.warning("Price decision")
