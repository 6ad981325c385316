"""Logging configuration for k8sdiscovery using structlog."""

import logging
import os
import sys
from typing import Any

import structlog


def setup_logging(verbose: bool = False) -> None:
    """Setup structured logging configuration.

    Args:
        verbose: If True, enables DEBUG logging regardless of LOG_LEVEL env var
    """
    if verbose:
        log_level = "DEBUG"
    else:
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    numeric_level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # JSON for log shippers, console otherwise
            _get_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger(__name__)
    logger.debug("Logging configured", log_level=log_level, verbose=verbose)


def _get_renderer() -> Any:
    """Get the appropriate log renderer based on environment."""
    log_format = os.getenv("LOG_FORMAT", "console").lower()

    if log_format == "json":
        return structlog.processors.JSONRenderer()
    else:
        return structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_function_entry(logger: structlog.stdlib.BoundLogger, func_name: str, **kwargs: Any) -> None:
    logger.debug("Function entry", function=func_name, **kwargs)


def log_function_exit(logger: structlog.stdlib.BoundLogger, func_name: str, **kwargs: Any) -> None:
    logger.debug("Function exit", function=func_name, **kwargs)


def log_api_request(logger: structlog.stdlib.BoundLogger, method: str, url: str, **kwargs: Any) -> None:
    """Log an outgoing request to the API server.

    Args:
        logger: The logger instance
        method: HTTP method
        url: Request URL
        **kwargs: Additional request details
    """
    logger.debug("API request", method=method, url=url, **kwargs)


def log_api_response(logger: structlog.stdlib.BoundLogger, method: str, url: str, status_code: int, **kwargs: Any) -> None:
    """Log the API server's response status.

    Args:
        logger: The logger instance
        method: HTTP method
        url: Request URL
        status_code: HTTP status code
        **kwargs: Additional response details
    """
    logger.debug("API response", method=method, url=url, status_code=status_code, **kwargs)


def log_watch_event(logger: structlog.stdlib.BoundLogger, operation: str, pod_name: str, **kwargs: Any) -> None:
    """Log a decoded watch stream event.

    Args:
        logger: The logger instance
        operation: Event type (ADDED, MODIFIED, DELETED)
        pod_name: Name of the pod in the event
        **kwargs: Additional event details
    """
    logger.debug("Watch event", operation=operation, pod_name=pod_name, **kwargs)


def log_discovery_event(logger: structlog.stdlib.BoundLogger, event_type: str, **kwargs: Any) -> None:
    """Log service discovery events.

    Args:
        logger: The logger instance
        event_type: Type of discovery event
        **kwargs: Event details
    """
    logger.info("Discovery event", event_type=event_type, **kwargs)
