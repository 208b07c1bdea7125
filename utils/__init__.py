"""Utility modules for the ClawBar Gateway Agent."""

from .backoff import ReconnectPolicy
from .logging import (
    configure_logging,
    create_contextual_logger,
    get_logger,
    log_exception,
    set_correlation_id,
    clear_correlation_id,
)

__all__ = [
    "ReconnectPolicy",
    "configure_logging",
    "create_contextual_logger",
    "get_logger",
    "log_exception",
    "set_correlation_id",
    "clear_correlation_id",
]
