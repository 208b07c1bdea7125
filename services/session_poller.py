"""Periodic session and usage polling over an authenticated connection.

Every tick requests ``sessions.list``; every Nth tick (the first included)
also requests ``usage.cost``. Responses arrive on the connection's receive loop
and are turned into consumer models by ``build_session_list`` and
``build_token_usage``.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from models.enums import GatewayMethod
from models.gateway import AgentSession, DailyTokenUsage, TokenUsageData
from utils import create_contextual_logger

SendRequest = Callable[[GatewayMethod, Dict[str, Any]], Awaitable[None]]

_EXCLUDED_KEY_MARKERS = ("subagent", "cron:")


def _as_count(value: Any) -> Optional[int]:
    """Integer token counts only; booleans and strings do not count."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def extract_session_name(key: str) -> str:
    """Display name from a composite session key like ``agent:main:telegram``."""
    parts = [part for part in key.split(":") if part]
    if len(parts) >= 3:
        return parts[2]
    if len(parts) == 2:
        return parts[1]
    return key


def build_session_list(raw_sessions: Iterable[Dict[str, Any]]) -> List[AgentSession]:
    """Filter and sort a ``sessions.list`` payload.

    Only direct sessions with positive token and context counts survive;
    sub-agent and scheduled-job sessions are skipped. The result is sorted by
    context usage, highest first.
    """
    sessions: List[AgentSession] = []

    for raw in raw_sessions:
        if raw.get("kind") != "direct":
            continue

        key = raw.get("key")
        key = key if isinstance(key, str) else ""
        if any(marker in key for marker in _EXCLUDED_KEY_MARKERS):
            continue

        total_tokens = _as_count(raw.get("totalTokens"))
        context_tokens = _as_count(raw.get("contextTokens"))
        if not total_tokens or not context_tokens or total_tokens < 0 or context_tokens < 0:
            continue

        compaction_count = _as_count(raw.get("compactionCount"))
        sessions.append(
            AgentSession(
                session_name=extract_session_name(key),
                total_tokens=total_tokens,
                context_window=context_tokens,
                compaction_count=compaction_count if compaction_count and compaction_count > 0 else 0,
            )
        )

    sessions.sort(key=lambda s: s.percent_used, reverse=True)
    return sessions


def build_token_usage(raw_daily: Iterable[Dict[str, Any]]) -> TokenUsageData:
    """Convert a ``usage.cost`` daily array; entries without a date are skipped."""
    daily: List[DailyTokenUsage] = []

    for raw in raw_daily:
        day = raw.get("date")
        if not isinstance(day, str):
            continue

        def count(field: str) -> int:
            value = _as_count(raw.get(field))
            return value if value is not None and value > 0 else 0

        daily.append(
            DailyTokenUsage(
                date=day,
                input=count("input"),
                output=count("output"),
                cache_read=count("cacheRead"),
                cache_write=count("cacheWrite"),
                total_tokens=count("totalTokens"),
            )
        )

    return TokenUsageData(daily=tuple(daily))


class PollScheduler:
    """Issues poll requests on a fixed cadence while the session is authenticated."""

    def __init__(
        self,
        send_request: SendRequest,
        interval: float = 15.0,
        tolerance: float = 2.0,
        usage_every: int = 6,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._send_request = send_request
        self.interval = interval
        self.tolerance = tolerance
        self.usage_every = usage_every
        self._rng = rng or random.Random()
        self.logger = create_contextual_logger(__name__, service="session_poller")

        self._task: Optional[asyncio.Task[None]] = None
        self._ticks = 0

    @classmethod
    def from_config(cls, config, send_request: SendRequest, rng: Optional[random.Random] = None) -> "PollScheduler":
        return cls(
            send_request,
            interval=config.poll_interval,
            tolerance=config.poll_tolerance,
            usage_every=config.usage_poll_every,
            rng=rng,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        if self.running:
            return
        self._ticks = 0
        self._task = asyncio.create_task(self._poll_loop(), name="gateway-poll")

    async def stop(self) -> None:
        """Cancel the loop and wait for it, unless called from the loop itself."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def tick(self) -> None:
        """Run one poll tick."""
        self._ticks += 1
        await self._send_request(GatewayMethod.SESSIONS_LIST, {})
        if (self._ticks - 1) % self.usage_every == 0:
            await self._send_request(GatewayMethod.USAGE_COST, {})

    async def _poll_loop(self) -> None:
        self.logger.debug("Session polling started", interval=self.interval)
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.warning("Poll tick failed", error=str(e), tick=self._ticks)

            await asyncio.sleep(self.interval + self._rng.uniform(0, self.tolerance))
