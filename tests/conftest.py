"""Test utilities and fixtures for ClawBar Gateway Agent tests."""

import asyncio
import json
import os
import sys
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from config import ApplicationConfig
from models import GatewayEvent, GatewayEventType


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""

    priority = 1  # type: ignore[assignment]

    def __init__(self) -> None:
        super().__init__()
        self.entries: Dict[Tuple[str, str], str] = {}
        self.fail_reads = False

    def get_password(self, service: str, username: str) -> Optional[str]:
        if self.fail_reads:
            raise KeyringError("keychain locked")
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found")


def _response(payload: Dict[str, Any], ok: bool = True, error: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    frame: Dict[str, Any] = {"type": "res", "ok": ok, "payload": payload}
    if error is not None:
        frame["error"] = error
    return frame


def create_raw_sessions() -> List[Dict[str, Any]]:
    """A sessions.list payload with one direct session and one cron job."""
    return [
        {
            "key": "agent:main:cron:abc",
            "kind": "direct",
            "totalTokens": 100000,
            "contextTokens": 200000,
            "compactionCount": 0,
        },
        {
            "key": "agent:main:main",
            "kind": "direct",
            "totalTokens": 100000,
            "contextTokens": 200000,
            "compactionCount": 2,
        },
    ]


def create_raw_daily() -> List[Dict[str, Any]]:
    """A usage.cost daily payload."""
    return [
        {
            "date": "2024-01-15",
            "input": 1200,
            "output": 800,
            "cacheRead": 5000,
            "cacheWrite": 300,
            "totalTokens": 7300,
        }
    ]


class FakeGatewaySocket:
    """Scripted stand-in for a gateway WebSocket.

    Sends a challenge as soon as it is opened and answers requests the way the
    gateway does. ``rejection`` turns the hello into an ``ok: false`` response and
    ``preamble`` frames are delivered ahead of the challenge.
    """

    def __init__(
        self,
        nonce: str = "nonce-1",
        rejection: Optional[Dict[str, Any]] = None,
        answer_connect: bool = True,
        fail_ping: bool = False,
        sessions: Optional[List[Dict[str, Any]]] = None,
        daily: Optional[List[Dict[str, Any]]] = None,
        preamble: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.incoming: "asyncio.Queue[Any]" = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.pings = 0
        self.rejection = rejection
        self.answer_connect = answer_connect
        self.fail_ping = fail_ping
        self.sessions = create_raw_sessions() if sessions is None else sessions
        self.daily = create_raw_daily() if daily is None else daily
        for frame in preamble or ():
            self.push(frame)
        self.push({"type": "event", "event": "connect.challenge", "payload": {"nonce": nonce}})

    def push(self, frame: Any) -> None:
        self.incoming.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self, error: Optional[BaseException] = None) -> None:
        """Make the pending receive fail as if the peer went away."""
        self.incoming.put_nowait(error or ConnectionResetError("connection reset by peer"))

    @property
    def methods(self) -> List[str]:
        return [frame["method"] for frame in self.sent]

    def requests(self, method: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent if frame["method"] == method]

    async def recv(self) -> Any:
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionError("socket is closed")
        frame = json.loads(text)
        self.sent.append(frame)

        method = frame["method"]
        if method == "connect" and self.answer_connect:
            if self.rejection is None:
                self.push(_response({"type": "hello-ok"}))
            else:
                self.push(_response({"type": "hello-ok"}, ok=False, error=self.rejection))
        elif method == "sessions.list":
            self.push(_response({"sessions": self.sessions}))
        elif method == "usage.cost":
            self.push(_response({"daily": self.daily}))

    async def ping(self) -> "asyncio.Future[float]":
        self.pings += 1
        if self.fail_ping:
            raise ConnectionError("ping failed")
        pong: "asyncio.Future[float]" = asyncio.get_running_loop().create_future()
        pong.set_result(0.0)
        return pong

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(ConnectionError("socket closed"))


class FakeConnector:
    """Connector returning fake sockets; the first ``fail_first`` opens fail."""

    def __init__(
        self,
        socket_factory: Optional[Callable[[], FakeGatewaySocket]] = None,
        fail_first: int = 0,
        fail_after: Optional[int] = None,
    ) -> None:
        self.socket_factory = socket_factory or FakeGatewaySocket
        self.fail_first = fail_first
        self.fail_after = fail_after
        self.calls: List[Tuple[str, str]] = []
        self.sockets: List[FakeGatewaySocket] = []

    async def __call__(self, url: str, origin: str, open_timeout: float) -> FakeGatewaySocket:
        self.calls.append((url, origin))
        attempt = len(self.calls)
        if attempt <= self.fail_first or (self.fail_after is not None and attempt > self.fail_after):
            raise ConnectionRefusedError("connection refused")
        ws = self.socket_factory()
        self.sockets.append(ws)
        return ws


class RecordingSink:
    """Event sink that records every event it receives."""

    def __init__(self) -> None:
        self.events: List[GatewayEvent] = []

    async def handle(self, event: GatewayEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: GatewayEventType) -> List[GatewayEvent]:
        return [event for event in self.events if event.type == event_type]

    @property
    def types(self) -> List[GatewayEventType]:
        return [event.type for event in self.events]

    async def wait_for(self, event_type: GatewayEventType, count: int = 1, timeout: float = 2.0) -> List[GatewayEvent]:
        await _wait_until(lambda: len(self.of_type(event_type)) >= count, timeout=timeout)
        return self.of_type(event_type)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it holds, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture(autouse=True)
def memory_keyring() -> Generator[MemoryKeyring, None, None]:
    """Route every keyring call to an in-memory backend."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def test_config() -> ApplicationConfig:
    """Configuration with timings shortened for tests."""
    return ApplicationConfig(
        _env_file=None,
        gateway_port=18789,
        gateway_token=None,
        identity_service="test.clawbar.device-identity",
        reconnect_backoff_floor=0.01,
        reconnect_backoff_ceiling=0.08,
        connect_timeout=1.0,
        poll_interval=0.05,
        poll_tolerance=0.0,
        ping_interval=0.05,
        ping_tolerance=0.0,
        ping_timeout=0.5,
    )


@pytest.fixture
def slow_reconnect_config(test_config: ApplicationConfig) -> ApplicationConfig:
    """Test configuration whose first reconnect will not fire during a test."""
    return test_config.model_copy(
        update={"reconnect_backoff_floor": 30.0, "reconnect_backoff_ceiling": 60.0}
    )


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """The ``_wait_until`` helper, for tests that wait on background tasks."""
    return _wait_until


@pytest.fixture
def raw_sessions() -> List[Dict[str, Any]]:
    return create_raw_sessions()


@pytest.fixture
def raw_daily() -> List[Dict[str, Any]]:
    return create_raw_daily()


@pytest.fixture
def make_connector() -> Callable[..., FakeConnector]:
    """Factory for connectors whose sockets take ``FakeGatewaySocket`` options."""

    def factory(fail_first: int = 0, fail_after: Optional[int] = None, **socket_options: Any) -> FakeConnector:
        return FakeConnector(
            socket_factory=lambda: FakeGatewaySocket(**socket_options),
            fail_first=fail_first,
            fail_after=fail_after,
        )

    return factory
