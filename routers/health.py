"""Health check router for the ClawBar Gateway Agent."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from config import ApplicationConfig
from models import ConnectionStatus
from services import GatewayConnection, GatewayStateTracker
from utils import get_logger

from .dependencies import get_config, get_connection, get_tracker

router = APIRouter(prefix="/health", tags=["health"])
logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_health_status(config: ApplicationConfig, tracker: GatewayStateTracker) -> Dict[str, Any]:
    """Healthy only while the gateway session is connected."""
    connected = tracker.status == ConnectionStatus.CONNECTED
    return {
        "status": "healthy" if connected else "degraded",
        "timestamp": _timestamp(),
        "version": config.app_version,
        "uptime_seconds": int(tracker.uptime_seconds),
        "gateway_connected": connected,
        "gateway_status": tracker.status_text,
    }


@router.get("/", response_model=Dict[str, Any])
async def health_check(
    config: ApplicationConfig = Depends(get_config),
    tracker: GatewayStateTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Get application health status."""
    try:
        return build_health_status(config, tracker)
    except Exception as e:
        logger.error("Health check failed", error=str(e), endpoint="/health/")
        return {
            "status": "unhealthy",
            "timestamp": _timestamp(),
            "version": "unknown",
            "uptime_seconds": 0,
            "gateway_connected": False,
            "components": {"gateway_state": {"status": "unhealthy", "error": str(e)}},
        }


@router.get("/detailed", response_model=Dict[str, Any])
async def detailed_health_check(
    config: ApplicationConfig = Depends(get_config),
    tracker: GatewayStateTracker = Depends(get_tracker),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Get detailed health status with connection and state information."""
    try:
        return {
            **build_health_status(config, tracker),
            "connection": connection.get_connection_info(),
            "metrics": tracker.snapshot(),
        }
    except Exception as e:
        logger.error("Detailed health check failed", error=str(e), endpoint="/health/detailed")
        return {
            "status": "unhealthy",
            "timestamp": _timestamp(),
            "version": "unknown",
            "uptime_seconds": 0,
            "gateway_connected": False,
            "components": {"gateway_state": {"status": "unhealthy", "error": str(e)}},
            "metrics": {"error": "Failed to retrieve metrics data", "details": str(e)},
        }
