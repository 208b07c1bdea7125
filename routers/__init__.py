"""API routers for the ClawBar Gateway Agent."""

from .gateway import router as gateway_router
from .health import router as health_router
from .metrics import router as metrics_router

__all__ = ["gateway_router", "health_router", "metrics_router"]
