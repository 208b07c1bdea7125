"""Request dependencies shared by the routers."""

from fastapi import Request

from config import ApplicationConfig
from services import GatewayConnection, GatewayStateTracker


def get_config(request: Request) -> ApplicationConfig:
    return request.app.state.config  # type: ignore[no-any-return]


def get_tracker(request: Request) -> GatewayStateTracker:
    """Dependency to get the gateway state tracker from application state."""
    return request.app.state.tracker  # type: ignore[no-any-return]


def get_connection(request: Request) -> GatewayConnection:
    """Dependency to get the gateway connection from application state."""
    return request.app.state.connection  # type: ignore[no-any-return]
