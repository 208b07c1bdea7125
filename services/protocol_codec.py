"""Encoding and decoding of gateway WebSocket frames.

Outbound frames are ``req`` envelopes. Inbound frames are decoded by shape:
responses are matched to their request by the payload they carry, not by id,
because the client never has two requests of the same kind outstanding.
Frames that cannot be decoded are dropped so that one bad frame never stops
the receive loop.
"""

import json
from typing import Any, Dict, Optional, Union

from models.enums import CompactionPhase
from models.protocol import (
    CHALLENGE_EVENT,
    CLIENT_ID,
    CLIENT_MODE,
    CLIENT_PLATFORM,
    CLIENT_ROLE,
    CLIENT_SCOPES,
    CLIENT_VERSION,
    COMPACTION_STREAM,
    DEFAULT_REJECTION_MESSAGE,
    HELLO_OK,
    PROTOCOL_VERSION,
    ChallengeFrame,
    CompactionFrame,
    DecodedFrame,
    HelloFrame,
    RequestFrame,
    SessionsFrame,
    UsageFrame,
)
from utils import get_logger

logger = get_logger(__name__)


class RequestIdGenerator:
    """Produces ``<tag>-1``, ``<tag>-2``, ... for one connection lifetime."""

    def __init__(self, tag: str = "clawbar") -> None:
        self.tag = tag
        self._counter = 0

    def next(self) -> str:
        self._counter += 1
        return f"{self.tag}-{self._counter}"

    def reset(self) -> None:
        self._counter = 0

    @property
    def issued(self) -> int:
        return self._counter


def encode_request(request_id: str, method: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Serialize a request envelope to JSON text."""
    frame = RequestFrame(id=request_id, method=method, params=params or {})
    return json.dumps(frame.model_dump(), separators=(",", ":"))


def build_connect_params(
    device_id: str,
    public_key_base64: str,
    signature: str,
    signed_at_ms: int,
    nonce: str,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    """Parameters of the ``connect`` request answering a challenge."""
    params: Dict[str, Any] = {
        "minProtocol": PROTOCOL_VERSION,
        "maxProtocol": PROTOCOL_VERSION,
        "client": {
            "id": CLIENT_ID,
            "version": CLIENT_VERSION,
            "platform": CLIENT_PLATFORM,
            "mode": CLIENT_MODE,
        },
        "role": CLIENT_ROLE,
        "scopes": list(CLIENT_SCOPES),
        "device": {
            "id": device_id,
            "publicKey": public_key_base64,
            "signature": signature,
            "signedAt": signed_at_ms,
            "nonce": nonce,
        },
        "caps": [],
    }
    if token:
        params["auth"] = {"token": token}
    return params


def _decode_event(frame: Dict[str, Any]) -> Optional[DecodedFrame]:
    if frame.get("event") == CHALLENGE_EVENT:
        payload = frame.get("payload")
        nonce = payload.get("nonce") if isinstance(payload, dict) else None
        return ChallengeFrame(nonce=nonce if isinstance(nonce, str) else "")

    data = frame.get("data")
    if isinstance(data, dict) and data.get("stream") == COMPACTION_STREAM:
        phase = data.get("phase")
        if phase in (CompactionPhase.START.value, CompactionPhase.END.value):
            return CompactionFrame(phase=CompactionPhase(phase))
    return None


def _decode_response(frame: Dict[str, Any]) -> Optional[DecodedFrame]:
    ok = frame.get("ok") is True
    payload = frame.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    if payload.get("type") == HELLO_OK:
        if ok:
            return HelloFrame(ok=True)
        error = frame.get("error")
        message = code = None
        if isinstance(error, dict):
            message = error.get("message")
            code = error.get("code")
        return HelloFrame(
            ok=False,
            error_message=message if isinstance(message, str) and message else DEFAULT_REJECTION_MESSAGE,
            error_code=code if isinstance(code, str) else None,
        )

    if not ok:
        return None

    sessions = payload.get("sessions")
    if isinstance(sessions, list):
        return SessionsFrame(sessions=[s for s in sessions if isinstance(s, dict)])

    daily = payload.get("daily")
    if isinstance(daily, list):
        return UsageFrame(daily=[d for d in daily if isinstance(d, dict)])

    return None


def decode_frame(message: Union[str, bytes]) -> Optional[DecodedFrame]:
    """Decode one inbound message, returning None for anything unrecognized."""
    if isinstance(message, (bytes, bytearray)):
        try:
            message = bytes(message).decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Dropping non-UTF-8 binary frame")
            return None

    try:
        frame = json.loads(message)
    except ValueError:
        logger.debug("Dropping malformed frame", size=len(message))
        return None

    if not isinstance(frame, dict):
        return None

    frame_type = frame.get("type")
    if frame_type == "event":
        return _decode_event(frame)
    if frame_type == "res":
        return _decode_response(frame)
    return None
