"""Wire-level models and constants for the gateway WebSocket protocol."""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import CompactionPhase

PROTOCOL_VERSION = 3
SIGNATURE_VERSION = "v2"

CLIENT_ID = "openclaw-macos"
CLIENT_VERSION = "1.0.0"
CLIENT_PLATFORM = "macOS"
CLIENT_MODE = "webchat"
CLIENT_ROLE = "operator"
CLIENT_SCOPES: Tuple[str, ...] = tuple(
    sorted(("operator.admin", "operator.approvals", "operator.pairing"))
)

CHALLENGE_EVENT = "connect.challenge"
HELLO_OK = "hello-ok"
COMPACTION_STREAM = "compaction"
DEFAULT_REJECTION_MESSAGE = "Connection rejected"


class RequestFrame(BaseModel):
    """Outbound request envelope."""

    type: str = "req"
    id: str = Field(..., description="Client-generated request id")
    method: str
    params: Dict[str, Any] = Field(default_factory=dict)


class InboundFrame(BaseModel):
    """Base class for decoded gateway frames."""

    model_config = ConfigDict(frozen=True)


class ChallengeFrame(InboundFrame):
    """``connect.challenge`` event carrying the nonce to sign."""

    nonce: str = ""


class CompactionFrame(InboundFrame):
    """Telemetry event marking a compaction boundary."""

    phase: CompactionPhase


class HelloFrame(InboundFrame):
    """Response to the ``connect`` request."""

    ok: bool
    error_message: Optional[str] = None
    error_code: Optional[str] = None


class SessionsFrame(InboundFrame):
    """``sessions.list`` response payload."""

    sessions: List[Dict[str, Any]] = Field(default_factory=list)


class UsageFrame(InboundFrame):
    """``usage.cost`` response payload."""

    daily: List[Dict[str, Any]] = Field(default_factory=list)


DecodedFrame = Union[ChallengeFrame, CompactionFrame, HelloFrame, SessionsFrame, UsageFrame]
