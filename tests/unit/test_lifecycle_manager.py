# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import threading
from typing import Any

import pytest

from conftest import CAMERA, FakeTransport, SleepRecorder, fail

from lifecycle.enums.backoff import BackoffPolicy
from lifecycle.enums.status import StatusKind
from lifecycle.errors import ConfigurationError
from lifecycle.manager import ConnectionLifecycleManager
from lifecycle.params import H264OverTCP
from lifecycle.retry import RetryPolicy
from lifecycle.status import StatusSnapshot
from transport.base import FrameGeometry, TransportRuntimeError


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def make_manager(
    transport: FakeTransport,
    *,
    sleep: Any = None,
    **kwargs: Any,
) -> ConnectionLifecycleManager:
    return ConnectionLifecycleManager(
        CAMERA,
        transport_factory=lambda params: transport,
        sleep=sleep or SleepRecorder(),
        **kwargs,
    )


def record(manager: ConnectionLifecycleManager) -> list[StatusSnapshot]:
    published: list[StatusSnapshot] = []
    manager.status.subscribe(published.append)
    return published


async def wait_until_entered(transport: FakeTransport) -> None:
    for _ in range(500):
        if transport.entered.is_set():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("transport start() never entered")


# ---------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------

def test_construction_registers_observer_and_builds_one_transport() -> None:
    built: list[FakeTransport] = []

    def factory(params: Any) -> FakeTransport:
        transport = FakeTransport()
        built.append(transport)
        return transport

    manager = ConnectionLifecycleManager(CAMERA, transport_factory=factory)

    assert len(built) == 1
    assert built[0].observer is manager
    assert manager.status.status.kind is StatusKind.IDLE
    assert manager.status.status.message == ""
    assert manager.status.is_loading is False


def test_invalid_parameters_fail_before_transport_is_built() -> None:
    built: list[Any] = []

    with pytest.raises(ConfigurationError):
        ConnectionLifecycleManager(
            H264OverTCP(host="172.20.10.1", port=0),
            transport_factory=built.append,
        )

    assert not built


def test_configure_display_hands_sink_to_transport() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    sink = object()

    manager.configure_display(sink)  # type: ignore[arg-type]

    assert transport.sinks == [sink]


# ---------------------------------------------------------------------
# start()
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_start_success_runs_transport_off_loop_thread() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)

    await manager.start()

    assert manager.status.status.kind is StatusKind.RUNNING
    assert manager.status.status.message == ""
    assert manager.status.is_loading is False
    assert transport.start_calls == 1
    assert transport.start_threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_start_while_running_is_a_noop() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()
    published = record(manager)

    await manager.start()

    assert transport.start_calls == 1
    assert transport.stop_calls == 0
    assert manager.status.status.kind is StatusKind.RUNNING
    assert not published


@pytest.mark.asyncio
async def test_start_while_loading_is_a_noop() -> None:
    transport = FakeTransport()
    transport.gate = threading.Event()
    manager = make_manager(transport)

    first = manager.request_start()
    await wait_until_entered(transport)

    await manager.start()
    assert transport.start_calls == 1
    assert manager.status.is_loading is True

    transport.gate.set()
    await first
    assert manager.status.status.kind is StatusKind.RUNNING
    assert transport.start_calls == 1


@pytest.mark.asyncio
async def test_two_failures_then_success_publishes_loading_then_running() -> None:
    transport = FakeTransport([fail("connection refused"), fail("timed out")])
    sleep = SleepRecorder()
    manager = make_manager(transport, sleep=sleep)
    published = record(manager)

    await manager.start()

    assert [s.status.kind for s in published] == [
        StatusKind.LOADING,
        StatusKind.LOADING,
        StatusKind.LOADING,
        StatusKind.RUNNING,
    ]
    assert [s.status.message for s in published] == [
        "",
        "connection refused",
        "timed out",
        "",
    ]
    assert [s.is_loading for s in published] == [True, True, True, False]
    assert transport.start_calls == 3
    assert sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [0, 1, 2])
async def test_fewer_failures_than_budget_end_running(failures: int) -> None:
    transport = FakeTransport([fail(f"e{i}") for i in range(failures)])
    manager = make_manager(transport)

    await manager.start()

    assert manager.status.status.kind is StatusKind.RUNNING
    assert transport.start_calls == failures + 1


@pytest.mark.asyncio
async def test_exhausted_budget_fails_without_further_attempts() -> None:
    transport = FakeTransport([fail("a"), fail("b"), fail("c"), fail("d")])
    sleep = SleepRecorder()
    manager = make_manager(transport, sleep=sleep)

    await manager.start()

    assert manager.status.status.kind is StatusKind.FAILED
    assert manager.status.status.message == "exceeded retry budget"
    assert manager.status.is_loading is False
    assert transport.start_calls == 3
    # No wait after the last attempt
    assert sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
async def test_any_exception_from_start_counts_as_failed_attempt() -> None:
    transport = FakeTransport([RuntimeError("boom"), ValueError()])
    manager = make_manager(transport)
    published = record(manager)

    await manager.start()

    assert [s.status.message for s in published][1:3] == ["boom", "ValueError"]
    assert manager.status.status.kind is StatusKind.RUNNING


@pytest.mark.asyncio
async def test_exponential_backoff_delays_double_and_cap() -> None:
    transport = FakeTransport([fail("x")] * 4)
    sleep = SleepRecorder()
    manager = make_manager(
        transport,
        sleep=sleep,
        retry_policy=RetryPolicy(
            max_attempts=5,
            backoff_s=1.0,
            backoff=BackoffPolicy.EXPONENTIAL,
            max_backoff_s=5.0,
        ),
    )

    await manager.start()

    assert sleep.delays == [1.0, 2.0, 4.0, 5.0]
    assert manager.status.status.kind is StatusKind.RUNNING


@pytest.mark.asyncio
async def test_start_after_failure_begins_a_fresh_sequence() -> None:
    transport = FakeTransport([fail("a"), fail("b"), fail("c")])
    manager = make_manager(transport)
    await manager.start()
    assert manager.status.status.kind is StatusKind.FAILED

    published = record(manager)
    await manager.start()

    assert published[0].is_loading is True
    assert published[0].status.kind is StatusKind.LOADING
    assert published[0].status.message == ""
    assert manager.status.status.kind is StatusKind.RUNNING
    assert transport.start_calls == 4


@pytest.mark.asyncio
async def test_backoff_wait_yields_to_the_loop() -> None:
    transport = FakeTransport([fail("a")])
    manager = make_manager(
        transport,
        sleep=asyncio.sleep,
        retry_policy=RetryPolicy(max_attempts=2, backoff_s=0.05),
    )
    ticks = 0
    done = False

    async def ticker() -> None:
        nonlocal ticks
        while not done:
            ticks += 1
            await asyncio.sleep(0.005)

    ticker_task = asyncio.create_task(ticker())
    await manager.start()
    done = True
    await ticker_task

    assert manager.status.status.kind is StatusKind.RUNNING
    assert ticks >= 3


# ---------------------------------------------------------------------
# stop()
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stop_when_idle_invokes_transport_stop_without_transition() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    published = record(manager)

    manager.stop()

    assert transport.stop_calls == 1
    assert manager.status.status.kind is StatusKind.IDLE
    assert not published


@pytest.mark.asyncio
async def test_stop_when_running_returns_to_idle() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()

    manager.stop()
    manager.stop()

    assert manager.status.status.kind is StatusKind.IDLE
    assert manager.status.is_loading is False
    assert transport.stop_calls == 2


@pytest.mark.asyncio
async def test_stop_when_failed_keeps_failure_message() -> None:
    transport = FakeTransport([fail("a"), fail("b"), fail("c")])
    manager = make_manager(transport)
    await manager.start()

    manager.stop()

    assert manager.status.status.kind is StatusKind.FAILED
    assert manager.status.status.message == "exceeded retry budget"
    assert transport.stop_calls == 1


@pytest.mark.asyncio
async def test_stop_during_backoff_cancels_remaining_attempts() -> None:
    transport = FakeTransport([fail("refused")])
    sleeping = asyncio.Event()

    async def blocking_sleep(delay: float) -> None:
        sleeping.set()
        await asyncio.Event().wait()

    manager = make_manager(transport, sleep=blocking_sleep)
    task = manager.request_start()
    await asyncio.wait_for(sleeping.wait(), timeout=2)

    manager.stop()
    await asyncio.wait_for(task, timeout=2)

    assert manager.status.status.kind is StatusKind.IDLE
    assert manager.status.is_loading is False
    assert transport.start_calls == 1
    assert transport.stop_calls == 1


@pytest.mark.asyncio
async def test_stale_success_after_stop_is_stopped_again() -> None:
    transport = FakeTransport()
    transport.gate = threading.Event()
    manager = make_manager(transport)
    task = manager.request_start()
    await wait_until_entered(transport)

    manager.stop()
    assert manager.status.status.kind is StatusKind.IDLE

    transport.gate.set()
    await asyncio.wait_for(task, timeout=2)

    assert manager.status.status.kind is StatusKind.IDLE
    assert manager.status.is_loading is False
    # once for stop(), once for the abandoned attempt's late success
    assert transport.stop_calls == 2


@pytest.mark.asyncio
async def test_start_after_abandoned_sequence_waits_for_it() -> None:
    transport = FakeTransport()
    transport.gate = threading.Event()
    manager = make_manager(transport)
    first = manager.request_start()
    await wait_until_entered(transport)
    manager.stop()

    second = manager.request_start()
    await asyncio.sleep(0.01)
    assert transport.start_calls == 1

    transport.gate.set()
    await asyncio.wait_for(asyncio.gather(first, second), timeout=2)

    assert transport.start_calls == 2
    assert manager.status.status.kind is StatusKind.RUNNING


@pytest.mark.asyncio
async def test_cancelling_start_task_abandons_sequence() -> None:
    transport = FakeTransport([fail("refused")])

    async def blocking_sleep(delay: float) -> None:
        await asyncio.Event().wait()

    manager = make_manager(transport, sleep=blocking_sleep)
    task = manager.request_start()
    for _ in range(100):
        if manager.status.status.message == "refused":
            break
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert manager.status.status.kind is StatusKind.IDLE
    assert manager.status.is_loading is False


# ---------------------------------------------------------------------
# Transport observer
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_runtime_error_while_running_fails_on_loop_thread() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()

    loop_thread = threading.get_ident()
    seen_on: list[int] = []
    manager.status.subscribe(lambda s: seen_on.append(threading.get_ident()))

    transport.raise_from_thread(TransportRuntimeError("stream closed by camera"))
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.FAILED
    assert manager.status.status.message == "stream closed by camera"
    assert manager.status.is_loading is False
    assert seen_on == [loop_thread]
    assert transport.start_calls == 1


@pytest.mark.asyncio
async def test_runtime_error_stops_transport_by_default() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()

    transport.raise_from_thread(TransportRuntimeError("reset"))
    await manager.flush_events()

    assert transport.stop_calls == 1


@pytest.mark.asyncio
async def test_runtime_error_can_leave_transport_running() -> None:
    """
    Whether a runtime error should also stop the transport is unresolved:
    the reference viewer only surfaced the failure. The flag keeps that
    behaviour available.
    """
    transport = FakeTransport()
    manager = make_manager(transport, stop_transport_on_runtime_error=False)
    await manager.start()

    transport.raise_from_thread(TransportRuntimeError("reset"))
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.FAILED
    assert transport.stop_calls == 0


@pytest.mark.asyncio
async def test_error_during_attempt_fails_session_once_start_returns() -> None:
    transport = FakeTransport()
    transport.gate = threading.Event()
    manager = make_manager(transport)
    task = manager.request_start()
    await wait_until_entered(transport)

    transport.raise_from_thread(TransportRuntimeError("glitch"))
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.LOADING
    assert manager.status.status.message == ""

    transport.gate.set()
    await asyncio.wait_for(task, timeout=2)
    assert manager.status.status.kind is StatusKind.FAILED
    assert manager.status.status.message == "glitch"
    assert manager.status.is_loading is False
    assert transport.stop_calls == 1


@pytest.mark.asyncio
async def test_session_dying_inside_start_is_not_reported_running() -> None:
    transport = FakeTransport()
    transport.die_on_start = TransportRuntimeError("stream closed by camera")
    manager = make_manager(transport)
    published = record(manager)

    await manager.start()
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.FAILED
    assert manager.status.status.message == "stream closed by camera"
    assert manager.status.is_loading is False
    assert transport.start_calls == 1
    assert transport.stop_calls == 1
    assert published[-1].status.kind is StatusKind.FAILED


@pytest.mark.asyncio
async def test_start_after_dying_session_can_run_again() -> None:
    transport = FakeTransport()
    transport.die_on_start = TransportRuntimeError("stream closed by camera")
    manager = make_manager(transport)
    await manager.start()
    await manager.flush_events()

    transport.die_on_start = None
    await manager.start()
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.RUNNING
    assert manager.status.status.message == ""


@pytest.mark.asyncio
async def test_runtime_error_while_idle_is_ignored(
    captured_logs: list[dict[str, Any]],
) -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()
    manager.stop()

    transport.raise_from_thread(TransportRuntimeError("late"))
    await manager.flush_events()

    assert manager.status.status.kind is StatusKind.IDLE
    assert any(
        e.get("decision") == "ignore"
        and e.get("details", {}).get("reason") == "no_active_session"
        for e in captured_logs
    )


@pytest.mark.asyncio
async def test_frame_geometry_forwarded_without_status_change() -> None:
    transport = FakeTransport()
    seen: list[FrameGeometry] = []
    manager = make_manager(transport, on_frame_geometry=seen.append)
    await manager.start()
    published = record(manager)

    transport.geometry_from_thread(1280, 720)
    await manager.flush_events()

    assert seen == [FrameGeometry(1280, 720)]
    assert manager.state.last_frame_geometry == (1280, 720)
    assert not published


@pytest.mark.asyncio
async def test_events_applied_in_order_raised() -> None:
    transport = FakeTransport()
    seen: list[FrameGeometry] = []
    manager = make_manager(transport, on_frame_geometry=seen.append)
    await manager.start()

    def burst() -> None:
        for i in range(1, 4):
            manager.on_frame_geometry(FrameGeometry(i, i))
        manager.on_error(TransportRuntimeError("after geometry"))
        manager.on_frame_geometry(FrameGeometry(9, 9))

    t = threading.Thread(target=burst)
    t.start()
    t.join()
    await manager.flush_events()

    assert seen == [
        FrameGeometry(1, 1),
        FrameGeometry(2, 2),
        FrameGeometry(3, 3),
        FrameGeometry(9, 9),
    ]
    assert manager.status.status.message == "after geometry"


@pytest.mark.asyncio
async def test_status_mutation_off_loop_thread_is_rejected() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()

    def stop_from_worker() -> BaseException | None:
        try:
            manager.stop()
        except RuntimeError as exc:
            return exc
        return None

    error = await asyncio.get_running_loop().run_in_executor(None, stop_from_worker)

    assert isinstance(error, RuntimeError)
    assert manager.status.status.kind is StatusKind.RUNNING
    assert transport.stop_calls == 0


# ---------------------------------------------------------------------
# Observability + shutdown
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_each_attempt_is_timed(captured_logs: list[dict[str, Any]]) -> None:
    transport = FakeTransport([fail("a")])
    manager = make_manager(transport)

    await manager.start()

    timers = [
        e for e in captured_logs
        if e.get("event_type") == "METRIC_TIMER"
        and e.get("metric") == "transport_start_attempt"
    ]
    assert [t["details"]["outcome"] for t in timers] == ["failed", "ok"]
    assert [t["details"]["attempt_number"] for t in timers] == [1, 2]
    assert all(t["endpoint"] == "172.20.10.1:4444" for t in timers)


@pytest.mark.asyncio
async def test_shutdown_stops_transport_and_pump() -> None:
    transport = FakeTransport()
    manager = make_manager(transport)
    await manager.start()

    await manager.shutdown()

    assert manager.status.status.kind is StatusKind.IDLE
    assert transport.stop_calls == 1
