"""
H.264-over-TCP byte transport.

Role in the system:
- Opens a TCP connection to the camera in start() (bounded by a timeout).
- Reads raw Annex-B bytes on a background reader thread.
- Hands every chunk to the attached frame sink (external decoder / render
  surface) and reports geometry the sink detects.
- Reports EOF and socket errors as TransportRuntimeError.

Architectural constraints:
- No decoding or NAL parsing happens here.
- No retries, timers or status live here.
- stop() never blocks: it does not wait for an in-flight connect or for the
  reader thread. A start() racing a stop() discards its socket and fails.
- Observer events are tagged with the session generation and dropped once
  that session has been stopped.
"""

from __future__ import annotations

import socket
import threading
from typing import Callable

from lifecycle.errors import describe
from lifecycle.params import H264OverTCP

from observability.logger import log_event

from transport.base import (
    FrameGeometry,
    StreamTransport,
    TransportRuntimeError,
    TransportStartError,
)

from constants import CONNECT_TIMEOUT_S, READ_CHUNK_BYTES


SocketFactory = Callable[[tuple[str, int], float], socket.socket]


def _create_connection(address: tuple[str, int], timeout: float) -> socket.socket:
    return socket.create_connection(address, timeout=timeout)


class H264TcpTransport(StreamTransport):
    """
    One TCP session at a time; start() on a live session restarts it.

    Thread model:
    - start()/stop() are called from the lifecycle manager (executor thread
      for start(), event loop thread for stop()).
    - The reader thread is the only caller of the observer.
    """

    def __init__(
        self,
        params: H264OverTCP,
        *,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
        socket_factory: SocketFactory = _create_connection,
    ) -> None:
        super().__init__()
        self._params = params
        self._connect_timeout_s = connect_timeout_s
        self._socket_factory = socket_factory

        # Reentrant: held across observer calls made by the reader thread.
        self._lock = threading.RLock()
        # Bumped by every start() and stop(); a start() that finds a
        # different generation after connecting lost a race with stop().
        self._generation = 0
        self._sock: socket.socket | None = None
        self._stop_event: threading.Event | None = None
        self._last_geometry: FrameGeometry | None = None

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._sock is not None

    # ------------------------------------------------------------------
    # StreamTransport
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.stop()

        with self._lock:
            self._generation += 1
            generation = self._generation

        address = (self._params.host, self._params.port)
        try:
            sock = self._socket_factory(address, self._connect_timeout_s)
        except OSError as exc:
            raise TransportStartError(
                f"unable to connect to {self._params.endpoint()}: {describe(exc)}"
            ) from exc

        # Blocking reads; stop() unblocks them by shutting the socket down.
        sock.settimeout(None)
        stop_event = threading.Event()
        reader = threading.Thread(
            target=self._reader_loop,
            args=(sock, stop_event, generation),
            daemon=True,
            name="H264TcpReader",
        )

        with self._lock:
            if generation != self._generation:
                superseded = True
            else:
                superseded = False
                self._sock = sock
                self._stop_event = stop_event
                self._last_geometry = None

        if superseded:
            _close_quietly(sock)
            raise TransportStartError("start superseded by stop")

        reader.start()
        log_event({
            "event_type": "TRANSPORT_CONNECTED",
            "endpoint": self._params.endpoint(),
        })

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            sock, self._sock = self._sock, None
            stop_event, self._stop_event = self._stop_event, None

        if stop_event is not None:
            stop_event.set()

        if sock is not None:
            _close_quietly(sock)
            log_event({
                "event_type": "TRANSPORT_DISCONNECTED",
                "endpoint": self._params.endpoint(),
            })

    # ------------------------------------------------------------------
    # Reader thread
    # ------------------------------------------------------------------

    def _reader_loop(
        self,
        sock: socket.socket,
        stop_event: threading.Event,
        generation: int,
    ) -> None:
        while not stop_event.is_set():
            try:
                data = sock.recv(READ_CHUNK_BYTES)
            except OSError as exc:
                self._report_error(
                    generation,
                    TransportRuntimeError(f"stream read failed: {describe(exc)}"),
                )
                return

            if not data:
                self._report_error(
                    generation, TransportRuntimeError("stream closed by camera")
                )
                return

            sink = self._sink
            if sink is None:
                continue

            try:
                geometry = sink.feed(data)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._report_error(
                    generation,
                    TransportRuntimeError(f"frame sink failed: {describe(exc)}"),
                )
                return

            if geometry is not None:
                self._report_geometry(generation, geometry)

    def _report_error(self, generation: int, error: TransportRuntimeError) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._notify_error(error)

    def _report_geometry(self, generation: int, geometry: FrameGeometry) -> None:
        with self._lock:
            if generation != self._generation or geometry == self._last_geometry:
                return
            self._last_geometry = geometry
            self._notify_geometry(geometry)


def _close_quietly(sock: socket.socket) -> None:
    """Shut down and close a socket; stop() must never raise."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Already disconnected by the peer
        pass
    try:
        sock.close()
    except OSError as exc:
        log_event({
            "event_type": "TRANSPORT_CLOSE_ERROR",
            "error": describe(exc),
        })
