"""WebSocket keepalive for an authenticated gateway connection.

A peer that stops answering without closing the socket is only noticed here:
a ping that fails or whose pong does not arrive in time is reported to the
connection as a transport failure, and the scheduler ends.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional

from utils import create_contextual_logger

Ping = Callable[[], Awaitable[None]]
FailureHandler = Callable[[BaseException], Awaitable[None]]


class KeepaliveScheduler:
    """Sends a transport ping every interval and reports the first failure."""

    def __init__(
        self,
        ping: Ping,
        on_failure: FailureHandler,
        interval: float = 30.0,
        tolerance: float = 5.0,
        timeout: float = 10.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._ping = ping
        self._on_failure = on_failure
        self.interval = interval
        self.tolerance = tolerance
        self.timeout = timeout
        self._rng = rng or random.Random()
        self.logger = create_contextual_logger(__name__, service="keepalive")

        self._task: Optional[asyncio.Task[None]] = None
        self.pings_sent = 0

    @classmethod
    def from_config(
        cls, config, ping: Ping, on_failure: FailureHandler, rng: Optional[random.Random] = None
    ) -> "KeepaliveScheduler":
        return cls(
            ping,
            on_failure,
            interval=config.ping_interval,
            tolerance=config.ping_tolerance,
            timeout=config.ping_timeout,
            rng=rng,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._keepalive_loop(), name="gateway-keepalive")

    async def stop(self) -> None:
        """Cancel the loop and wait for it, unless called from the loop itself."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # The loop returns on its own after reporting a failure
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval + self._rng.uniform(0, self.tolerance))

            try:
                self.pings_sent += 1
                await asyncio.wait_for(self._ping(), timeout=self.timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.warning(
                    "Keepalive ping failed",
                    error=str(e) or type(e).__name__,
                    pings_sent=self.pings_sent,
                )
                await self._on_failure(e)
                return
