"""Event sink abstraction between the connection engine and its consumers."""

import asyncio
from typing import List, Optional, Protocol, runtime_checkable

from models.events import GatewayEvent


@runtime_checkable
class EventSink(Protocol):
    """Anything that can receive gateway events.

    ``handle`` is awaited while the connection holds its state lock, so it must
    not call back into ``GatewayConnection`` (``stop``, ``update_config``,
    ``reset_identity``) directly; schedule such calls as a separate task.
    """

    async def handle(self, event: GatewayEvent) -> None: ...


class QueueEventSink:
    """Buffers events on an asyncio queue for a consumer task to read."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "asyncio.Queue[GatewayEvent]" = asyncio.Queue(maxsize=maxsize)

    async def handle(self, event: GatewayEvent) -> None:
        await self._queue.put(event)

    async def get(self, timeout: Optional[float] = None) -> GatewayEvent:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def drain(self) -> List[GatewayEvent]:
        """Return every buffered event without waiting."""
        events: List[GatewayEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def qsize(self) -> int:
        return self._queue.qsize()
