"""Structured logging for the ClawBar Gateway Agent.

Logs go to stdout through structlog, either as JSON lines or as a single
human-readable line per event. Each gateway connection attempt (and each HTTP
request) runs under its own correlation id, so the receive, poll and
keepalive logs of one attempt can be grouped together.
"""

import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog

correlation_id_context: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Third-party loggers kept at WARNING whatever the configured level
_QUIET_LOGGERS = (
    "asyncio",
    "websockets",
    "keyring",
    "httpx",
    "httpcore",
    "uvicorn.access",
)


def _render_line(logger: Any, name: str, event_dict: Dict[str, Any]) -> str:
    """Render ``<timestamp> [<level>]: <event> {context}``."""
    timestamp = event_dict.pop("timestamp", "")
    level = event_dict.pop("level", "info")
    event = event_dict.pop("event", "")
    event_dict.pop("logger", None)

    line = f"{timestamp} [{level}]: {event}"
    if not event_dict:
        return line
    return f"{line} {json.dumps(event_dict, sort_keys=True, separators=(',', ':'), default=str)}"


def _add_process_context(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict["pid"] = os.getpid()
    correlation_id = correlation_id_context.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation id for the current context and return it."""
    correlation_id = correlation_id or str(uuid.uuid4())
    correlation_id_context.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    correlation_id_context.set(None)


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure the standard library root logger and structlog.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: JSON lines when True, otherwise one readable line per event.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_process_context,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True, default=str))
    else:
        processors.append(_render_line)

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally with bound context."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger


def create_contextual_logger(
    name: str,
    correlation_id: Optional[str] = None,
    **context: Any
) -> structlog.stdlib.BoundLogger:
    """Create a logger bound to a service name and other fixed fields.

    Without ``correlation_id`` the id is read per event from the context
    variable, which is what long-lived services want.
    """
    if correlation_id:
        context["correlation_id"] = correlation_id
    return get_logger(name, **context)


def log_exception(
    logger: structlog.stdlib.BoundLogger,
    exception: BaseException,
    message: str = "An error occurred",
    **additional_context: Any
) -> None:
    """Log an exception with its type, message and stack trace."""
    logger.error(
        message,
        exc_info=exception,
        exception_type=type(exception).__name__,
        exception_message=str(exception),
        **additional_context,
    )
