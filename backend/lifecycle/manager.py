"""
Connection lifecycle manager for the camera stream.

Responsibilities:
- Own the single transport instance and register as its observer
- Own the authoritative lifecycle state and the published status
- Call the pure reducer for every event
- Drive the start attempt / backoff sequence
- Execute commands with side effects (transport calls, timers, logging)
- Marshal transport callbacks onto the event loop through the event channel

Non-responsibilities:
- Retry policy decisions (reducer + retry module)
- Decoding, rendering, UI layout
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable

from lifecycle.channel import EventChannel
from lifecycle.commands import (
    AttemptTransportStart,
    CancelBackoff,
    Command,
    LogEvent,
    NotifyFrameGeometry,
    ScheduleBackoff,
    StopTransport,
)
from lifecycle.enums.status import StatusKind
from lifecycle.errors import describe
from lifecycle.events import (
    AttemptFailed,
    AttemptSucceeded,
    BackoffElapsed,
    Event,
    EventType,
    FrameGeometryDetected,
    StartRequested,
    StopRequested,
    TransportErrorRaised,
)
from lifecycle.params import ConnectionParameters, validate_parameters
from lifecycle.reducer import reduce
from lifecycle.retry import RetryPolicy
from lifecycle.state import LifecycleState
from lifecycle.status import StatusPublisher, StatusView

from observability.logger import log_event, now_ms
from observability.metrics import timed

from transport.base import FrameGeometry, FrameSink, StreamTransport
from transport.factory import TransportFactory, create_transport


SleepFn = Callable[[float], Awaitable[Any]]
GeometryHook = Callable[[FrameGeometry], None]

# Commands that only make sense inside a start() sequence.
_SEQUENCE_COMMANDS = (AttemptTransportStart, ScheduleBackoff)


class ConnectionLifecycleManager:
    """
    Lifecycle shell around one StreamTransport.

    Architectural role:
    The manager is the bridge between the pure lifecycle reducer
    (immutable state + commands) and the imperative world (transport,
    timers, logging, observers).

    Guarantees:
    - Reducer is called exactly once per event
    - State and status are only written on the event loop thread
    - Immediate side effects run before the new status is published
    - At most one start() sequence is in flight
    - Backoff waits are cancellable asyncio timers (never thread sleeps)
    - Transport callbacks are applied in the order they were raised
    """

    def __init__(
        self,
        params: ConnectionParameters,
        *,
        retry_policy: RetryPolicy | None = None,
        transport_factory: TransportFactory = create_transport,
        stop_transport_on_runtime_error: bool = True,
        sleep: SleepFn = asyncio.sleep,
        on_frame_geometry: GeometryHook | None = None,
    ) -> None:
        validate_parameters(params)

        self._params = params
        self._state = LifecycleState(
            retry_policy=retry_policy or RetryPolicy(),
            stop_transport_on_runtime_error=stop_transport_on_runtime_error,
        )
        self._publisher = StatusPublisher(self._state.snapshot())
        self._channel = EventChannel()
        self._sleep = sleep
        self._on_frame_geometry = on_frame_geometry

        self._sequence_lock = asyncio.Lock()
        self._backoff_task: asyncio.Future[Any] | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._start_tasks: set[asyncio.Task[None]] = set()

        # Constructed once, never replaced.
        self._transport: StreamTransport = transport_factory(params)
        self._transport.observer = self

        log_event({
            "event_type": "LIFECYCLE_MANAGER_CREATED",
            "endpoint": self._params.endpoint(),
            "transport_kind": self._params.kind.value,
            "max_attempts": self._state.retry_policy.max_attempts,
            "backoff": self._state.retry_policy.backoff.value,
        })

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def status(self) -> StatusView:
        """Read-only published status (snapshot + subscriptions)."""
        return self._publisher.view

    @property
    def params(self) -> ConnectionParameters:
        return self._params

    @property
    def state(self) -> LifecycleState:
        """
        Current immutable lifecycle state.

        For diagnostics and tests; the presentation layer uses `status`.
        """
        return self._state

    @property
    def channel(self) -> EventChannel:
        return self._channel

    # ------------------------------------------------------------------
    # Display wiring
    # ------------------------------------------------------------------

    def configure_display(self, sink: FrameSink | None) -> None:
        """Hand the external decoder / render surface to the transport."""
        self._transport.attach_sink(sink)

    # ------------------------------------------------------------------
    # Control API (event loop thread)
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Establish the stream with bounded retries.

        Returns when the sequence ends: RUNNING, FAILED, or abandoned by
        stop(). A no-op while RUNNING or while another sequence is loading.
        Cancelling the awaiting task abandons the sequence like stop().
        """
        self._bind_loop()

        if self._state.status.kind is StatusKind.RUNNING or self._state.is_loading:
            self._apply_outside_sequence(self._start_requested())
            return

        # Held only by a sequence; a stopped sequence still finishing its
        # last attempt makes us wait here.
        async with self._sequence_lock:
            pending = deque(self._apply(self._start_requested()))
            try:
                await self._run_sequence(pending)
            except asyncio.CancelledError:
                if self._state.is_loading:
                    self.stop()
                raise

    def request_start(self) -> asyncio.Task[None]:
        """
        Schedule start() without awaiting it.

        Used by lifecycle handlers that must return immediately.
        """
        task = asyncio.get_running_loop().create_task(self.start())
        self._start_tasks.add(task)
        task.add_done_callback(self._on_start_task_done)
        return task

    def stop(self) -> None:
        """
        Halt the session. Synchronous, non-blocking, idempotent.

        Always calls transport stop(). RUNNING/LOADING become IDLE; FAILED
        keeps its message; IDLE stays IDLE.
        """
        self._apply_outside_sequence(
            StopRequested(event_type=EventType.STOP_REQUESTED, ts_ms=now_ms())
        )

    async def flush_events(self) -> None:
        """Wait until every transport event posted so far has been applied."""
        await self._channel.join()

    async def shutdown(self) -> None:
        """
        Stop the transport and cancel every task owned by the manager.

        Called from the app lifespan on process shutdown.
        """
        self.stop()

        for task in list(self._start_tasks):
            task.cancel()
        if self._start_tasks:
            await asyncio.gather(*self._start_tasks, return_exceptions=True)

        if self._pump_task is not None:
            self._pump_task.cancel()
            await asyncio.gather(self._pump_task, return_exceptions=True)
            self._pump_task = None

        log_event({
            "event_type": "LIFECYCLE_MANAGER_SHUTDOWN",
            "endpoint": self._params.endpoint(),
            "channel": {
                "delivered": self._channel.counters.delivered,
                "dropped_geometry": self._channel.counters.dropped_geometry,
                "dropped_unbound": self._channel.counters.dropped_unbound,
            },
        })

    # ------------------------------------------------------------------
    # Transport observer contract (any thread)
    # ------------------------------------------------------------------

    def on_frame_geometry(self, geometry: FrameGeometry) -> None:
        self._channel.post(
            FrameGeometryDetected(
                event_type=EventType.FRAME_GEOMETRY_DETECTED,
                ts_ms=now_ms(),
                width=geometry.width,
                height=geometry.height,
            )
        )

    def on_error(self, error: BaseException) -> None:
        self._channel.post(
            TransportErrorRaised(
                event_type=EventType.TRANSPORT_ERROR,
                ts_ms=now_ms(),
                reason=describe(error),
            )
        )

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def _apply(self, event: Event) -> list[Command]:
        """
        Run one event through the reducer.

        Steps:
        1. Reduce and swap in the new state
        2. Execute immediate commands in reducer order
        3. Publish the new status snapshot
        4. Return sequence commands for the caller to drive
        """
        self._publisher.assert_owner_thread()

        new_state, commands = reduce(self._state, event)
        self._state = new_state

        deferred: list[Command] = []
        for cmd in commands:
            if isinstance(cmd, _SEQUENCE_COMMANDS):
                deferred.append(cmd)
            else:
                self._execute_immediate(cmd)

        self._publisher.publish(new_state.snapshot())
        return deferred

    def _apply_outside_sequence(self, event: Event) -> None:
        deferred = self._apply(event)
        if deferred:
            raise RuntimeError(
                f"reducer emitted sequence commands for {event.event_type.value} "
                f"outside a start sequence: {[type(c).__name__ for c in deferred]}"
            )

    def _start_requested(self) -> StartRequested:
        return StartRequested(event_type=EventType.START_REQUESTED, ts_ms=now_ms())

    # ------------------------------------------------------------------
    # Start sequence
    # ------------------------------------------------------------------

    async def _run_sequence(self, pending: deque[Command]) -> None:
        """
        Drive attempt / backoff commands until the reducer stops emitting them.

        Sequential by construction: one command at a time, each answered by
        at most one follow-up event.
        """
        while pending:
            cmd = pending.popleft()

            if isinstance(cmd, AttemptTransportStart):
                follow_up: Event | None = await self._attempt_transport_start(cmd)
            elif isinstance(cmd, ScheduleBackoff):
                follow_up = await self._wait_backoff(cmd)
            else:  # pragma: no cover - _apply only defers sequence commands
                raise RuntimeError(f"unexpected sequence command: {cmd!r}")

            if follow_up is not None:
                pending.extend(self._apply(follow_up))

    async def _attempt_transport_start(self, cmd: AttemptTransportStart) -> Event:
        """
        Call transport start() once, off the loop thread.

        Any exception counts as a failed attempt so the loading flag can
        never be left set by a misbehaving transport.
        """
        loop = asyncio.get_running_loop()

        with timed(
            "transport_start_attempt",
            endpoint=self._params.endpoint(),
            details={"run_id": cmd.run_id, "attempt_number": cmd.attempt_number},
        ) as details:
            try:
                await loop.run_in_executor(None, self._transport.start)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                details["outcome"] = "failed"
                details["error"] = type(exc).__name__
                return AttemptFailed(
                    event_type=EventType.ATTEMPT_FAILED,
                    ts_ms=now_ms(),
                    run_id=cmd.run_id,
                    attempt=cmd.attempt_number,
                    reason=describe(exc),
                )
            details["outcome"] = "ok"

        return AttemptSucceeded(
            event_type=EventType.ATTEMPT_SUCCEEDED,
            ts_ms=now_ms(),
            run_id=cmd.run_id,
            attempt=cmd.attempt_number,
        )

    async def _wait_backoff(self, cmd: ScheduleBackoff) -> Event | None:
        """
        Cooperative, cancellable backoff.

        Returns BackoffElapsed, or None when CancelBackoff (stop) won.
        """
        task = asyncio.ensure_future(self._sleep(cmd.delay_s))
        self._backoff_task = task
        try:
            await asyncio.wait({task})
        finally:
            if self._backoff_task is task:
                self._backoff_task = None
            if not task.done():
                task.cancel()

        if task.cancelled():
            log_event({
                "event_type": "BACKOFF_CANCELLED",
                "endpoint": self._params.endpoint(),
                "run_id": cmd.run_id,
            })
            return None

        # Surface errors raised by an injected sleep
        task.result()

        return BackoffElapsed(
            event_type=EventType.BACKOFF_ELAPSED,
            ts_ms=now_ms(),
            run_id=cmd.run_id,
        )

    # ------------------------------------------------------------------
    # Immediate command execution
    # ------------------------------------------------------------------

    def _execute_immediate(self, cmd: Command) -> None:
        """Execute a single non-sequence command."""
        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "endpoint": self._params.endpoint(),
            })

        elif isinstance(cmd, StopTransport):
            self._transport.stop()
            log_event({
                "ts_ms": now_ms(),
                "event_type": "TRANSPORT_STOP_EXECUTED",
                "endpoint": self._params.endpoint(),
                "reason": cmd.reason,
            })

        elif isinstance(cmd, CancelBackoff):
            task = self._backoff_task
            if task is not None and not task.done():
                task.cancel()

        elif isinstance(cmd, NotifyFrameGeometry):
            if self._on_frame_geometry is not None:
                self._on_frame_geometry(FrameGeometry(width=cmd.width, height=cmd.height))

        else:
            raise RuntimeError(f"unknown command: {type(cmd).__name__}")

    # ------------------------------------------------------------------
    # Event loop plumbing
    # ------------------------------------------------------------------

    def _bind_loop(self) -> None:
        """Bind channel + publisher to the running loop; start the pump once."""
        loop = asyncio.get_running_loop()
        self._channel.bind(loop)
        self._publisher.bind_owner_thread()

        if self._pump_task is None or self._pump_task.done():
            self._pump_task = loop.create_task(self._pump())

    async def _pump(self) -> None:
        """
        Drain the event channel on the loop thread, one event at a time.

        A failing event is logged and the pump keeps going; stopping here
        would strand every later transport error.
        """
        while True:
            event = await self._channel.get()
            try:
                self._apply_outside_sequence(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "EVENT_PUMP_ERROR",
                    "endpoint": self._params.endpoint(),
                    "failed_event": event.event_type.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            finally:
                self._channel.task_done()

    def _on_start_task_done(self, task: asyncio.Task[None]) -> None:
        self._start_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "START_TASK_ERROR",
                "endpoint": self._params.endpoint(),
                "exception": type(exc).__name__,
                "message": str(exc),
            })
