# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

import json
import threading
from typing import Any

import pytest

from lifecycle.params import H264OverTCP
from observability import logger
from transport.base import FrameGeometry, StreamTransport, TransportStartError


CAMERA = H264OverTCP(host="172.20.10.1", port=4444)


class FakeTransport(StreamTransport):
    """
    Scripted transport.

    outcomes: consumed one per start(); None = success, an exception = raised.
    Once exhausted, start() succeeds.
    """

    def __init__(self, outcomes: list[BaseException | None] | None = None) -> None:
        super().__init__()
        self.outcomes = list(outcomes or [])
        self.start_calls = 0
        self.stop_calls = 0
        self.start_threads: list[int] = []
        self.sinks: list[Any] = []

        # Set gate to make start() block until released
        self.gate: threading.Event | None = None
        self.entered = threading.Event()

        # Session dies from the reader thread before start() returns
        self.die_on_start: BaseException | None = None

    def start(self) -> None:
        self.start_calls += 1
        self.start_threads.append(threading.get_ident())
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome is not None:
                raise outcome
        if self.die_on_start is not None:
            self.raise_from_thread(self.die_on_start)

    def stop(self) -> None:
        self.stop_calls += 1

    def attach_sink(self, sink: Any) -> None:
        super().attach_sink(sink)
        self.sinks.append(sink)

    # Simulate the reader thread
    def raise_from_thread(self, error: BaseException) -> None:
        t = threading.Thread(target=self._notify_error, args=(error,))
        t.start()
        t.join()

    def geometry_from_thread(self, width: int, height: int) -> None:
        t = threading.Thread(
            target=self._notify_geometry, args=(FrameGeometry(width, height),)
        )
        t.start()
        t.join()


class SleepRecorder:
    """Injected sleep: records delays, returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def fail(reason: str) -> TransportStartError:
    return TransportStartError(reason)


@pytest.fixture
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []

    def fake_print(line: str) -> None:
        emitted.append(json.loads(line))

    monkeypatch.setattr(logger, "_print", fake_print)
    monkeypatch.setattr(logger, "_enabled", True)
    return emitted
