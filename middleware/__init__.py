"""HTTP middleware for the ClawBar Gateway Agent."""

from .correlation import CORRELATION_HEADER, CorrelationMiddleware

__all__ = ["CORRELATION_HEADER", "CorrelationMiddleware"]
