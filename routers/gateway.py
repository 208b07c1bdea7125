"""Gateway status and control router."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from models import ConnectionConfig
from services import GatewayConnection, GatewayStateTracker
from utils import get_logger

from .dependencies import get_connection, get_tracker

router = APIRouter(prefix="/gateway", tags=["gateway"])
logger = get_logger(__name__)


@router.get("/status", response_model=Dict[str, Any])
async def gateway_status(
    tracker: GatewayStateTracker = Depends(get_tracker),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Current connection status as shown to the user."""
    return {**tracker.snapshot(), "connection": connection.get_connection_info()}


@router.get("/sessions", response_model=Dict[str, Any])
async def gateway_sessions(tracker: GatewayStateTracker = Depends(get_tracker)) -> Dict[str, Any]:
    """Latest direct agent sessions, highest context usage first."""
    return {
        "sessions": [
            {
                **session.model_dump(mode="json"),
                "percent_used": round(session.percent_used, 1),
                "formatted_tokens": session.formatted_tokens,
            }
            for session in tracker.sessions
        ],
        "highest_percent_used": round(tracker.highest_percent_used, 1),
        "last_update": tracker.last_update.isoformat() if tracker.last_update else None,
    }


@router.get("/usage", response_model=Dict[str, Any])
async def gateway_usage(tracker: GatewayStateTracker = Depends(get_tracker)) -> Dict[str, Any]:
    """Latest daily token usage, if a usage poll has completed."""
    usage = tracker.token_usage
    if usage is None:
        return {"available": False, "daily": []}

    today = usage.today
    return {
        "available": True,
        "daily": [entry.model_dump(mode="json") for entry in usage.daily],
        "today": today.model_dump(mode="json") if today else None,
        "total_input": usage.total_input,
        "total_output": usage.total_output,
        "total_tokens": usage.total_tokens,
        "fetched_at": usage.fetched_at.isoformat(),
    }


@router.put("/config", response_model=Dict[str, Any])
async def update_gateway_config(
    new_config: ConnectionConfig,
    tracker: GatewayStateTracker = Depends(get_tracker),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Change the gateway port or token; a change forces a reconnect."""
    changed = new_config != connection.connection_config
    await connection.update_config(new_config)
    if changed and connection.is_running:
        tracker.mark_connecting()

    logger.info("Gateway config update requested", port=new_config.port, changed=changed)
    return {
        "changed": changed,
        "port": connection.connection_config.port,
        "has_token": connection.connection_config.gateway_token is not None,
        "state": connection.state.value,
    }


@router.post("/identity/reset", response_model=Dict[str, Any])
async def reset_device_identity(
    tracker: GatewayStateTracker = Depends(get_tracker),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Forget the paired device identity; the new one must be approved again."""
    reset = await connection.reset_identity()
    if reset and connection.is_running:
        tracker.mark_connecting()
    return {"reset": reset, "status_text": tracker.status_text}
