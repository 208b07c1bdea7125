"""Data models for the ClawBar Gateway Agent.

This module contains all Pydantic models used throughout the application,
ensuring strict type safety and runtime validation."""

# Import all enums
from .enums import (
    CompactionPhase,
    ConnectionStatus,
    GatewayEventType,
    GatewayMethod,
    SessionState,
)

# Import connection models
from .connection import ConnectionConfig

# Import gateway data models
from .gateway import AgentSession, DailyTokenUsage, TokenUsageData, format_token_count

# Import event models
from .events import (
    AnyGatewayEvent,
    AuthFailed,
    CompactionEnded,
    CompactionStarted,
    Connected,
    Disconnected,
    GatewayEvent,
    SessionsUpdate,
    TokenUsageUpdate,
    WaitingForApproval,
)

# Import protocol models
from .protocol import (
    ChallengeFrame,
    CompactionFrame,
    DecodedFrame,
    HelloFrame,
    InboundFrame,
    RequestFrame,
    SessionsFrame,
    UsageFrame,
)

__all__ = [
    # Enums
    "CompactionPhase",
    "ConnectionStatus",
    "GatewayEventType",
    "GatewayMethod",
    "SessionState",
    # Connection models
    "ConnectionConfig",
    # Gateway data models
    "AgentSession",
    "DailyTokenUsage",
    "TokenUsageData",
    "format_token_count",
    # Events
    "AnyGatewayEvent",
    "AuthFailed",
    "CompactionEnded",
    "CompactionStarted",
    "Connected",
    "Disconnected",
    "GatewayEvent",
    "SessionsUpdate",
    "TokenUsageUpdate",
    "WaitingForApproval",
    # Protocol models
    "ChallengeFrame",
    "CompactionFrame",
    "DecodedFrame",
    "HelloFrame",
    "InboundFrame",
    "RequestFrame",
    "SessionsFrame",
    "UsageFrame",
]
