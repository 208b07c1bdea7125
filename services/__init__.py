"""Service layer for the ClawBar Gateway Agent."""

from .device_identity import DeviceIdentity, DeviceIdentityStore, derive_device_id
from .errors import (
    GatewayClientError,
    IdentityCorruptedError,
    IdentityError,
    IdentityStoreError,
    SigningEncodingError,
    SigningError,
)
from .event_sink import EventSink, QueueEventSink
from .gateway_connection import GatewayConnection, open_gateway_socket
from .gateway_state import GatewayStateTracker
from .keepalive import KeepaliveScheduler
from .session_poller import PollScheduler, build_session_list, build_token_usage

__all__ = [
    "DeviceIdentity",
    "DeviceIdentityStore",
    "derive_device_id",
    "GatewayClientError",
    "IdentityCorruptedError",
    "IdentityError",
    "IdentityStoreError",
    "SigningEncodingError",
    "SigningError",
    "EventSink",
    "QueueEventSink",
    "GatewayConnection",
    "open_gateway_socket",
    "GatewayStateTracker",
    "KeepaliveScheduler",
    "PollScheduler",
    "build_session_list",
    "build_token_usage",
]
