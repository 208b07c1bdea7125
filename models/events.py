"""Events emitted by the gateway connection to its consumer.

Each event is an immutable value. Consumers treat them as advisory state:
``SessionsUpdate`` always carries the complete current list.
"""

from typing import Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import GatewayEventType
from .gateway import AgentSession, TokenUsageData


class GatewayEvent(BaseModel):
    """Base class for all connection events."""

    model_config = ConfigDict(frozen=True)


class Connected(GatewayEvent):
    type: Literal[GatewayEventType.CONNECTED] = GatewayEventType.CONNECTED


class Disconnected(GatewayEvent):
    type: Literal[GatewayEventType.DISCONNECTED] = GatewayEventType.DISCONNECTED
    reason: str = Field(default="", description="Transport error that ended the session")


class WaitingForApproval(GatewayEvent):
    type: Literal[GatewayEventType.WAITING_FOR_APPROVAL] = GatewayEventType.WAITING_FOR_APPROVAL
    message: str = ""


class AuthFailed(GatewayEvent):
    type: Literal[GatewayEventType.AUTH_FAILED] = GatewayEventType.AUTH_FAILED
    message: str


class SessionsUpdate(GatewayEvent):
    type: Literal[GatewayEventType.SESSIONS_UPDATE] = GatewayEventType.SESSIONS_UPDATE
    sessions: Tuple[AgentSession, ...] = Field(default_factory=tuple)


class TokenUsageUpdate(GatewayEvent):
    type: Literal[GatewayEventType.TOKEN_USAGE_UPDATE] = GatewayEventType.TOKEN_USAGE_UPDATE
    usage: TokenUsageData


class CompactionStarted(GatewayEvent):
    type: Literal[GatewayEventType.COMPACTION_STARTED] = GatewayEventType.COMPACTION_STARTED


class CompactionEnded(GatewayEvent):
    type: Literal[GatewayEventType.COMPACTION_ENDED] = GatewayEventType.COMPACTION_ENDED


AnyGatewayEvent = Union[
    Connected,
    Disconnected,
    WaitingForApproval,
    AuthFailed,
    SessionsUpdate,
    TokenUsageUpdate,
    CompactionStarted,
    CompactionEnded,
]
