"""Enumeration types for gateway agent models."""

from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of the single logical gateway session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_CHALLENGE_RESPONSE = "awaiting_challenge_response"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


class GatewayEventType(str, Enum):
    """Event variants emitted by the connection engine."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    AUTH_FAILED = "auth_failed"
    SESSIONS_UPDATE = "sessions_update"
    TOKEN_USAGE_UPDATE = "token_usage_update"
    COMPACTION_STARTED = "compaction_started"
    COMPACTION_ENDED = "compaction_ended"


class ConnectionStatus(str, Enum):
    """Consumer-facing connection status."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    CONNECTED = "connected"
    ERROR = "error"


class CompactionPhase(str, Enum):
    """Phases of a gateway-side compaction."""

    START = "start"
    END = "end"


class GatewayMethod(str, Enum):
    """Gateway request methods used by the client."""

    CONNECT = "connect"
    SESSIONS_LIST = "sessions.list"
    USAGE_COST = "usage.cost"
