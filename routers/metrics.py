"""Metrics router for the ClawBar Gateway Agent."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from services import GatewayConnection, GatewayStateTracker
from utils import get_logger

from .dependencies import get_connection, get_tracker

router = APIRouter(prefix="/metrics", tags=["metrics"])
logger = get_logger(__name__)


@router.get("/", response_class=Response)
async def prometheus_metrics() -> Response:
    """Get Prometheus metrics in text format."""
    try:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
    except Exception as e:
        logger.error("Failed to retrieve Prometheus metrics", error=str(e), endpoint="/metrics/")
        return Response(
            content=f"# ERROR: Failed to retrieve metrics - {e}\n",
            media_type=CONTENT_TYPE_LATEST,
            status_code=503,
        )


@router.get("/json", response_model=Dict[str, Any])
async def json_metrics(
    tracker: GatewayStateTracker = Depends(get_tracker),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Get metrics in JSON format."""
    try:
        info = connection.get_connection_info()
        return {
            **tracker.snapshot(),
            "uptime_seconds": int(tracker.uptime_seconds),
            "reconnect_attempts": info["reconnect_attempts"],
            "poll_ticks": info["poll_ticks"],
        }
    except Exception as e:
        logger.error("Failed to retrieve JSON metrics", error=str(e), endpoint="/metrics/json")
        return {
            "error": "Failed to retrieve metrics data",
            "details": str(e),
            "status": "service_unavailable",
        }
