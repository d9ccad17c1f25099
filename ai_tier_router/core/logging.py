"""
Structured logging configuration.

All router modules log through structlog. Per-request fields (caller_id,
request_id) are bound into context variables by the execution engine and
merged into every entry emitted while the request runs.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog

SERVICE_NAME = "ai_tier_router"


def _add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict["service"] = SERVICE_NAME
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging for the router.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, render JSON lines. If False, use the console renderer
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically named after the calling module."""
    return structlog.get_logger(name)


def bind_request_context(caller_id: str, request_id: Optional[str] = None) -> str:
    """Bind per-request fields into the logging context.

    Args:
        caller_id: Caller the request belongs to
        request_id: Existing request ID, or None to generate one

    Returns:
        The request ID that was bound
    """
    request_id = request_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(caller_id=caller_id, request_id=request_id)
    return request_id


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars("caller_id", "request_id")
