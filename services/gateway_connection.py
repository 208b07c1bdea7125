"""Persistent, authenticated connection to the local OpenClaw gateway.

The connection owns one WebSocket at a time and walks it through
challenge-response authentication, periodic polling and keepalive. Every
failure tears the socket down and schedules a reconnect with exponential
backoff. Consumers only see typed events delivered to an ``EventSink``.

All state transitions happen while holding one ``asyncio.Lock``. Each
connection attempt gets a new generation number; tasks started for an older
generation find it stale when they wake up and exit without touching state
or emitting events.
"""

import asyncio
import random
import time
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets

from config import ApplicationConfig
from models import (
    AuthFailed,
    ChallengeFrame,
    CompactionEnded,
    CompactionFrame,
    CompactionPhase,
    CompactionStarted,
    Connected,
    ConnectionConfig,
    DecodedFrame,
    Disconnected,
    GatewayEvent,
    GatewayMethod,
    HelloFrame,
    SessionState,
    SessionsFrame,
    SessionsUpdate,
    TokenUsageUpdate,
    UsageFrame,
    WaitingForApproval,
)
from utils import ReconnectPolicy, create_contextual_logger, log_exception, set_correlation_id

from .device_identity import DeviceIdentity, DeviceIdentityStore
from .errors import IdentityError, SigningError
from .event_sink import EventSink
from .keepalive import KeepaliveScheduler
from .metrics import gateway_frames_dropped_total, gateway_reconnects_total
from .protocol_codec import RequestIdGenerator, build_connect_params, decode_frame, encode_request
from .session_poller import PollScheduler, build_session_list, build_token_usage
from .signing import build_signing_message, sign_message

Connector = Callable[..., Awaitable[Any]]

_PAIRING_CODES = ("NOT_PAIRED",)
_PAIRING_MARKERS = ("pairing required", "not paired")
_CLOSE_TIMEOUT = 2.0
_MAX_FRAME_SIZE = 16 * 1024 * 1024


async def open_gateway_socket(url: str, origin: str, open_timeout: float) -> Any:
    """Open the gateway WebSocket.

    Protocol-level pings are disabled; liveness is handled by the
    connection's own keepalive so that a failure is reported exactly once.
    """
    return await websockets.connect(
        url,
        origin=origin,
        open_timeout=open_timeout,
        ping_interval=None,
        close_timeout=_CLOSE_TIMEOUT,
        max_size=_MAX_FRAME_SIZE,
    )


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def is_pairing_pending(frame: HelloFrame) -> bool:
    """True when a handshake rejection means the device awaits operator approval."""
    if frame.error_code in _PAIRING_CODES:
        return True
    message = (frame.error_message or "").lower()
    return any(marker in message for marker in _PAIRING_MARKERS)


class GatewayConnection:
    """Connection state machine for the gateway session."""

    def __init__(
        self,
        config: ApplicationConfig,
        sink: EventSink,
        connection_config: Optional[ConnectionConfig] = None,
        identity_store: Optional[DeviceIdentityStore] = None,
        connector: Optional[Connector] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        reconnect_policy: Optional[ReconnectPolicy] = None,
    ) -> None:
        self.config = config
        self._sink = sink
        self._connection_config = connection_config or ConnectionConfig(
            port=config.gateway_port, gateway_token=config.gateway_token
        )
        self._identity_store = identity_store or DeviceIdentityStore.from_config(config)
        self._connector = connector or open_gateway_socket
        self._rng = rng or random.Random()
        self._clock = clock
        self.logger = create_contextual_logger(__name__, service="gateway_connection")

        self._lock = asyncio.Lock()
        self._backoff = reconnect_policy or ReconnectPolicy.from_config(config, rng=self._rng)
        self._request_ids = RequestIdGenerator(config.client_tag)

        self._state = SessionState.IDLE
        self._disconnect_reason: Optional[str] = None
        self._running = False
        self._generation = 0
        self._identity: Optional[DeviceIdentity] = None
        self._ws: Optional[Any] = None
        self._connect_sent = False
        self._disconnect_reported = False

        self._attempt_task: Optional[asyncio.Task[None]] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._poller: Optional[PollScheduler] = None
        self._keepalive: Optional[KeepaliveScheduler] = None

    # --- Accessors ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def disconnect_reason(self) -> Optional[str]:
        return self._disconnect_reason

    @property
    def connection_config(self) -> ConnectionConfig:
        return self._connection_config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def device_id(self) -> Optional[str]:
        return self._identity.device_id if self._identity else None

    @property
    def current_backoff(self) -> float:
        """Pre-jitter delay the next reconnect would use."""
        return self._backoff.current_base

    def get_connection_info(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the connection."""
        return {
            "state": self._state.value,
            "running": self._running,
            "port": self._connection_config.port,
            "url": self._connection_config.ws_url,
            "has_token": self._connection_config.gateway_token is not None,
            "device_id": self.device_id,
            "disconnect_reason": self._disconnect_reason,
            "reconnect_attempts": self._backoff.attempts,
            "next_backoff_base": self.current_backoff,
            "poll_ticks": self._poller.ticks if self._poller else 0,
        }

    # --- Public operations ---

    async def start(self) -> None:
        """Begin connecting. Calling start on a running connection does nothing."""
        async with self._lock:
            if self._running:
                return
            self._running = True
            self._backoff.reset()
            self.logger.info("Starting gateway connection", url=self._connection_config.ws_url)
            self._set_state(SessionState.CONNECTING)
            self._launch_attempt(0.0)

    async def stop(self) -> None:
        """Close the connection and cancel every pending task. Safe to call twice."""
        async with self._lock:
            if not self._running:
                return
            self._running = False
            self._generation += 1
            await self._teardown(cancel_attempt=True)
            self._backoff.reset()
            self._disconnect_reported = False
            self._set_state(SessionState.IDLE)
            self.logger.info("Gateway connection stopped")

    async def update_config(self, connection_config: ConnectionConfig) -> None:
        """Apply a new port or token, reconnecting immediately if it changed."""
        async with self._lock:
            if connection_config == self._connection_config:
                return
            self._connection_config = connection_config
            self.logger.info(
                "Gateway configuration changed",
                port=connection_config.port,
                has_token=connection_config.gateway_token is not None,
            )
            if self._running:
                await self._reconnect_now_locked()

    async def reset_identity(self) -> bool:
        """Discard the stored device identity; the next attempt pairs a new one.

        Returns False, after emitting ``AuthFailed``, when the secure store
        could not be updated.
        """
        async with self._lock:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._identity_store.delete)
            except IdentityError as e:
                self.logger.error("Failed to reset device identity", error=str(e))
                await self._emit(AuthFailed(message=f"Failed to reset device identity: {e}"))
                return False

            self._identity = None
            if self._running:
                await self._reconnect_now_locked()
            return True

    # --- Attempt lifecycle ---

    def _is_current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    def _set_state(self, state: SessionState, reason: Optional[str] = None) -> None:
        if state != self._state:
            self.logger.debug("Session state change", previous=self._state.value, state=state.value)
        self._state = state
        self._disconnect_reason = reason if state == SessionState.DISCONNECTED else None

    def _launch_attempt(self, delay: float) -> None:
        """Schedule the next connection attempt, replacing any pending one."""
        pending = self._attempt_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()
        self._attempt_task = asyncio.create_task(
            self._run_attempt(self._generation, delay), name="gateway-connect"
        )

    async def _reconnect_now_locked(self) -> None:
        self._generation += 1
        await self._teardown(cancel_attempt=True)
        self._backoff.reset()
        self._disconnect_reported = False
        self._set_state(SessionState.CONNECTING)
        self._launch_attempt(0.0)

    def _schedule_reconnect(self) -> None:
        if not self._running:
            return
        delay = self._backoff.next_delay()
        gateway_reconnects_total.inc()
        self.logger.info(
            "Scheduling reconnect",
            delay=round(delay, 3),
            base=self._backoff.last_base,
            attempt=self._backoff.attempts,
        )
        self._launch_attempt(delay)

    async def _run_attempt(self, generation: int, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        set_correlation_id()
        await self._connect(generation)

    async def _connect(self, generation: int) -> None:
        async with self._lock:
            if not self._is_current(generation):
                return
            self._set_state(SessionState.CONNECTING)
            self._request_ids.reset()
            self._connect_sent = False

            try:
                loop = asyncio.get_running_loop()
                identity = await loop.run_in_executor(None, self._identity_store.load_or_create)
            except IdentityError as e:
                self.logger.error("Device identity unavailable", error=str(e))
                await self._disconnect_locked(
                    f"identity unavailable: {e}",
                    AuthFailed(message=f"Failed to create device identity: {e}"),
                )
                return

            self._identity = identity
            target = self._connection_config

        self.logger.info("Connecting to gateway", url=target.ws_url, device_id=identity.device_id)
        try:
            ws = await asyncio.wait_for(
                self._connector(target.ws_url, origin=target.origin, open_timeout=self.config.connect_timeout),
                timeout=self.config.connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_transport_failure(generation, f"connect failed: {_describe(e)}")
            return

        async with self._lock:
            if not self._is_current(generation):
                await self._close_socket(ws)
                return
            self._ws = ws
            self._set_state(SessionState.AWAITING_CHALLENGE_RESPONSE)
            self._receive_task = asyncio.create_task(
                self._receive_loop(generation, ws), name="gateway-receive"
            )

    async def _handle_transport_failure(self, generation: int, reason: str) -> None:
        async with self._lock:
            if not self._is_current(generation):
                return
            self.logger.warning("Gateway connection lost", reason=reason)
            await self._disconnect_locked(reason)

    async def _disconnect_locked(self, reason: str, event: Optional[GatewayEvent] = None) -> None:
        """Tear down the current attempt, report it and schedule one reconnect.

        Without an explicit event a ``Disconnected`` is emitted, once per outage.
        """
        self._generation += 1
        await self._teardown(cancel_attempt=False)
        self._set_state(SessionState.DISCONNECTED, reason)

        if event is not None:
            await self._emit(event)
        elif not self._disconnect_reported:
            self._disconnect_reported = True
            await self._emit(Disconnected(reason=reason))

        self._schedule_reconnect()

    async def _teardown(self, cancel_attempt: bool) -> None:
        poller, self._poller = self._poller, None
        if poller is not None:
            await poller.stop()

        keepalive, self._keepalive = self._keepalive, None
        if keepalive is not None:
            await keepalive.stop()

        receive, self._receive_task = self._receive_task, None
        await self._cancel_task(receive)

        if cancel_attempt:
            attempt, self._attempt_task = self._attempt_task, None
            await self._cancel_task(attempt)

        ws, self._ws = self._ws, None
        if ws is not None:
            await self._close_socket(ws)
        self._connect_sent = False

    @staticmethod
    async def _cancel_task(task: Optional["asyncio.Task[None]"]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _close_socket(self, ws: Any) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=_CLOSE_TIMEOUT)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug("Error while closing gateway socket", error=str(e))

    # --- Receive path ---

    async def _receive_loop(self, generation: int, ws: Any) -> None:
        while True:
            try:
                message = await ws.recv()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self._handle_transport_failure(generation, f"receive failed: {_describe(e)}")
                return

            frame = decode_frame(message)
            if frame is None:
                gateway_frames_dropped_total.inc()
                continue

            try:
                await self._dispatch(generation, frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_exception(self.logger, e, "Failed to handle gateway frame", frame=type(frame).__name__)

            if not self._is_current(generation):
                return

    async def _dispatch(self, generation: int, frame: DecodedFrame) -> None:
        if isinstance(frame, ChallengeFrame):
            await self._answer_challenge(generation, frame.nonce)
        elif isinstance(frame, HelloFrame):
            await self._handle_hello(generation, frame)
        elif isinstance(frame, SessionsFrame):
            sessions = build_session_list(frame.sessions)
            await self._emit_current(generation, SessionsUpdate(sessions=tuple(sessions)))
        elif isinstance(frame, UsageFrame):
            await self._emit_current(generation, TokenUsageUpdate(usage=build_token_usage(frame.daily)))
        elif isinstance(frame, CompactionFrame):
            if frame.phase == CompactionPhase.START:
                await self._emit_current(generation, CompactionStarted())
            else:
                await self._emit_current(generation, CompactionEnded())

    async def _answer_challenge(self, generation: int, nonce: str) -> None:
        async with self._lock:
            if not self._is_current(generation):
                return
            if self._state != SessionState.AWAITING_CHALLENGE_RESPONSE or self._connect_sent:
                self.logger.debug("Ignoring challenge", state=self._state.value)
                return

            identity = self._identity
            token = self._connection_config.gateway_token
            signed_at = int(self._clock() * 1000)
            try:
                signature = sign_message(
                    build_signing_message(identity.device_id, nonce, signed_at, token),
                    identity.private_key,
                )
            except SigningError as e:
                self.logger.error("Failed to sign gateway challenge", error=str(e))
                await self._disconnect_locked(
                    f"signing failed: {e}", AuthFailed(message=f"Failed to sign challenge: {e}")
                )
                return

            params = build_connect_params(
                device_id=identity.device_id,
                public_key_base64=identity.public_key_base64,
                signature=signature,
                signed_at_ms=signed_at,
                nonce=nonce,
                token=token,
            )
            self._connect_sent = True
            await self._send(self._ws, GatewayMethod.CONNECT, params)

    async def _handle_hello(self, generation: int, frame: HelloFrame) -> None:
        async with self._lock:
            if not self._is_current(generation):
                return
            if self._state != SessionState.AWAITING_CHALLENGE_RESPONSE or not self._connect_sent:
                self.logger.debug("Ignoring unexpected handshake response", state=self._state.value)
                return

            if not frame.ok:
                message = frame.error_message or ""
                if is_pairing_pending(frame):
                    self.logger.warning("Device is waiting for approval on the gateway", message=message)
                    event: GatewayEvent = WaitingForApproval(message=message)
                else:
                    self.logger.error("Gateway rejected the handshake", message=message, code=frame.error_code)
                    event = AuthFailed(message=message)
                await self._disconnect_locked(f"handshake rejected: {message}", event)
                return

            self._connect_sent = False
            self._backoff.reset()
            self._set_state(SessionState.AUTHENTICATED)
            self._disconnect_reported = False
            self.logger.info("Gateway session authenticated", device_id=self.device_id)
            await self._emit(Connected())

            ws = self._ws
            self._poller = PollScheduler.from_config(
                self.config, partial(self._send_request, generation), rng=self._rng
            )
            self._keepalive = KeepaliveScheduler.from_config(
                self.config,
                partial(self._ping, ws),
                partial(self._on_keepalive_failure, generation),
                rng=self._rng,
            )
            self._poller.start()
            self._keepalive.start()

    # --- Outbound path ---

    async def _send(self, ws: Any, method: GatewayMethod, params: Dict[str, Any]) -> None:
        if ws is None:
            return
        request_id = self._request_ids.next()
        try:
            await ws.send(encode_request(request_id, method.value, params))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning("Failed to send gateway request", method=method.value, id=request_id, error=str(e))

    async def _send_request(self, generation: int, method: GatewayMethod, params: Dict[str, Any]) -> None:
        if not self._is_current(generation) or self._state != SessionState.AUTHENTICATED:
            return
        await self._send(self._ws, method, params)

    async def _ping(self, ws: Any) -> None:
        pong_waiter = await ws.ping()
        await pong_waiter

    async def _on_keepalive_failure(self, generation: int, error: BaseException) -> None:
        await self._handle_transport_failure(generation, f"keepalive failed: {_describe(error)}")

    # --- Event delivery ---

    async def _emit_current(self, generation: int, event: GatewayEvent) -> None:
        async with self._lock:
            if not self._is_current(generation) or self._state != SessionState.AUTHENTICATED:
                return
            await self._emit(event)

    async def _emit(self, event: GatewayEvent) -> None:
        try:
            await self._sink.handle(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_exception(self.logger, e, "Event sink failed", event_type=event.type.value)
