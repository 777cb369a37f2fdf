"""
Thread-safe event channel into the event loop.

Transport callbacks may fire on any thread. They never touch lifecycle
state directly: they post an event here, and the manager's pump task drains
the channel on the loop thread.

Guarantees:
- post() is safe from any thread (loop.call_soon_threadsafe).
- Delivery order equals post order (single FIFO queue).
- Error events are never dropped or coalesced.
- Geometry events are dropped (counted, logged) once GEOMETRY_BACKLOG_MAX
  geometry events are already pending.
- Posts before bind() or after the loop closed are logged as dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from lifecycle.events import Event, FrameGeometryDetected

from observability.logger import log_event

from constants import GEOMETRY_BACKLOG_MAX


@dataclass
class ChannelCounters:
    """Counters for observability."""
    delivered: int = 0
    dropped_geometry: int = 0
    dropped_unbound: int = 0


class EventChannel:
    """
    FIFO message channel from arbitrary threads into one event loop.

    Lifecycle:
    1. bind(loop) on the loop thread before the transport can fire
    2. post(event) from any thread
    3. await get() / task_done() in the single consumer (pump task)
    """

    def __init__(self, *, geometry_backlog_max: int = GEOMETRY_BACKLOG_MAX) -> None:
        if geometry_backlog_max < 1:
            raise ValueError("geometry_backlog_max must be >= 1")

        self._geometry_backlog_max = geometry_backlog_max
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Event] | None = None
        self._pending_geometry = 0
        self.counters = ChannelCounters()

    @property
    def is_bound(self) -> bool:
        return self._loop is not None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Attach the channel to its consumer loop.

        Must be called on the loop thread. Re-binding to the same loop is a
        no-op; binding to another loop is a programming error.
        """
        if self._loop is loop:
            return
        if self._loop is not None and not self._loop.is_closed():
            raise RuntimeError("event channel already bound to another loop")

        self._loop = loop
        self._queue = asyncio.Queue()
        self._pending_geometry = 0

    # ------------------------------------------------------------------
    # Producer side (any thread)
    # ------------------------------------------------------------------

    def post(self, event: Event) -> None:
        """Schedule delivery of an event onto the bound loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self.counters.dropped_unbound += 1
            log_event({
                "event_type": "CHANNEL_EVENT_DROPPED",
                "reason": "unbound" if loop is None else "loop_closed",
                "dropped_event": event.event_type.value,
            })
            return

        try:
            loop.call_soon_threadsafe(self._enqueue, event)
        except RuntimeError:
            # Loop closed between the check and the call
            self.counters.dropped_unbound += 1
            log_event({
                "event_type": "CHANNEL_EVENT_DROPPED",
                "reason": "loop_closed",
                "dropped_event": event.event_type.value,
            })

    # ------------------------------------------------------------------
    # Loop side
    # ------------------------------------------------------------------

    def _enqueue(self, event: Event) -> None:
        # Runs on the loop thread; counters need no lock.
        assert self._queue is not None, "channel must be bound before enqueue"

        if isinstance(event, FrameGeometryDetected):
            if self._pending_geometry >= self._geometry_backlog_max:
                self.counters.dropped_geometry += 1
                log_event({
                    "event_type": "CHANNEL_EVENT_DROPPED",
                    "reason": "geometry_backpressure",
                    "dropped_event": event.event_type.value,
                    "pending_geometry": self._pending_geometry,
                })
                return
            self._pending_geometry += 1

        self._queue.put_nowait(event)

    async def get(self) -> Event:
        """Wait for the next event in post order."""
        assert self._queue is not None, "channel must be bound before get"
        event = await self._queue.get()
        if isinstance(event, FrameGeometryDetected):
            self._pending_geometry -= 1
        return event

    def task_done(self) -> None:
        assert self._queue is not None, "channel must be bound before task_done"
        self.counters.delivered += 1
        self._queue.task_done()

    def pending(self) -> int:
        return 0 if self._queue is None else self._queue.qsize()

    async def join(self) -> None:
        """
        Wait until every event posted so far has been consumed.

        Yields once first so call_soon_threadsafe callbacks already
        scheduled from other threads land in the queue.
        """
        if self._queue is None:
            return
        await asyncio.sleep(0)
        await self._queue.join()
