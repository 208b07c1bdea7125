"""Current gateway state, folded from connection events.

The tracker is the event sink used by the status API. It keeps the latest
connection status, session list and token usage, and mirrors them into
Prometheus metrics.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from models import (
    AgentSession,
    AuthFailed,
    ConnectionStatus,
    Connected,
    Disconnected,
    GatewayEvent,
    GatewayEventType,
    SessionsUpdate,
    TokenUsageData,
    TokenUsageUpdate,
    WaitingForApproval,
    format_token_count,
)
from utils import create_contextual_logger

from .metrics import (
    gateway_connected,
    gateway_events_total,
    gateway_session_context_percent,
    gateway_tokens_today,
)

_STATUS_TEXT = {
    ConnectionStatus.DISCONNECTED: "Disconnected",
    ConnectionStatus.CONNECTING: "Connecting...",
    ConnectionStatus.WAITING_FOR_APPROVAL: "Waiting for approval...",
    ConnectionStatus.CONNECTED: "Connected",
}


class GatewayStateTracker:
    """Event sink that keeps what a status display needs to show."""

    def __init__(self) -> None:
        self.logger = create_contextual_logger(__name__, service="gateway_state")
        self._start_time = time.time()

        self.status = ConnectionStatus.DISCONNECTED
        self.error_message: Optional[str] = None
        self.sessions: Tuple[AgentSession, ...] = ()
        self.token_usage: Optional[TokenUsageData] = None
        self.last_update: Optional[datetime] = None
        self.compacting = False
        self.event_counts: Dict[str, int] = {}

    @property
    def status_text(self) -> str:
        if self.status == ConnectionStatus.ERROR:
            return f"Error: {self.error_message or 'unknown'}"
        return _STATUS_TEXT[self.status]

    @property
    def highest_percent_used(self) -> float:
        return max((s.percent_used for s in self.sessions), default=0.0)

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self._start_time

    def mark_connecting(self) -> None:
        """Called when a connection is started or forced to reconnect."""
        self._set_status(ConnectionStatus.CONNECTING)

    async def handle(self, event: GatewayEvent) -> None:
        event_type = event.type.value
        self.event_counts[event_type] = self.event_counts.get(event_type, 0) + 1
        gateway_events_total.labels(event_type=event_type).inc()

        if isinstance(event, Connected):
            self._set_status(ConnectionStatus.CONNECTED)
        elif isinstance(event, Disconnected):
            self._set_status(ConnectionStatus.DISCONNECTED)
        elif isinstance(event, WaitingForApproval):
            self._set_status(ConnectionStatus.WAITING_FOR_APPROVAL)
        elif isinstance(event, AuthFailed):
            self._set_status(ConnectionStatus.ERROR, event.message)
        elif isinstance(event, SessionsUpdate):
            self._apply_sessions(event.sessions)
        elif isinstance(event, TokenUsageUpdate):
            self._apply_usage(event.usage)
        else:
            self.compacting = event.type == GatewayEventType.COMPACTION_STARTED
            self.logger.info("Context compaction", phase=event_type)

    def _set_status(self, status: ConnectionStatus, error_message: Optional[str] = None) -> None:
        if status != self.status:
            self.logger.info("Gateway status changed", status=status.value, error=error_message)
        self.status = status
        self.error_message = error_message
        gateway_connected.set(1 if status == ConnectionStatus.CONNECTED else 0)

    def _apply_sessions(self, sessions: Tuple[AgentSession, ...]) -> None:
        self.sessions = tuple(sessions)
        self.last_update = datetime.now(timezone.utc)
        self._set_status(ConnectionStatus.CONNECTED)

        gateway_session_context_percent.clear()
        for session in self.sessions:
            gateway_session_context_percent.labels(session=session.session_name).set(session.percent_used)

    def _apply_usage(self, usage: TokenUsageData) -> None:
        self.token_usage = usage
        today = usage.today
        gateway_tokens_today.set(today.total_tokens if today else 0)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the current state."""
        today = self.token_usage.today if self.token_usage else None
        return {
            "status": self.status.value,
            "status_text": self.status_text,
            "error": self.error_message,
            "session_count": len(self.sessions),
            "highest_percent_used": round(self.highest_percent_used, 1),
            "compacting": self.compacting,
            "tokens_today": format_token_count(today.total_tokens) if today else None,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "event_counts": dict(self.event_counts),
        }
