"""
Stream transport contract.

This module defines the *interface only*: no retries, no backoff, no status,
no orchestration decisions live here.

Key invariants:
- start() is synchronous and may block or raise TransportStartError.
- stop() is synchronous, idempotent and never raises.
- The transport reports two kinds of asynchronous events to its observer:
  frame geometry detected, and transport error. Both may be raised from any
  thread (typically a background reader thread).
- The transport never mutates lifecycle status; the observer marshals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from lifecycle.errors import StreamViewerError


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class TransportStartError(StreamViewerError):
    """A start() attempt failed; retried by the lifecycle manager."""


class TransportRuntimeError(StreamViewerError):
    """An established session broke; surfaced immediately, not retried."""


# ---------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class FrameGeometry:
    """Detected media size in pixels."""
    width: int
    height: int


# ---------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------

@runtime_checkable
class TransportObserver(Protocol):
    """
    Receiver of asynchronous transport events.

    Implementations must be callable from any thread.
    """

    def on_frame_geometry(self, geometry: FrameGeometry) -> None: ...

    def on_error(self, error: BaseException) -> None: ...


@runtime_checkable
class FrameSink(Protocol):
    """
    External decoder / render surface fed with raw stream bytes.

    feed() runs on the transport's reader thread. It returns the media
    geometry when the sink has detected it (or detected a change), else None.
    """

    def feed(self, data: bytes) -> FrameGeometry | None: ...


# ---------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------

class StreamTransport(ABC):
    """
    Abstract interface for a camera stream transport.

    Implementations are responsible for:
    - Establishing the byte-level session in start()
    - Tearing it down in stop()
    - Reporting geometry and runtime errors to `observer`

    Non-responsibilities:
    - No retry or backoff
    - No session status
    - No thread marshalling (the observer owns that)
    """

    def __init__(self) -> None:
        self.observer: TransportObserver | None = None
        self._sink: FrameSink | None = None

    def attach_sink(self, sink: FrameSink | None) -> None:
        """Attach (or detach with None) the external frame sink."""
        self._sink = sink

    @abstractmethod
    def start(self) -> None:
        """
        Establish the session.

        Raises:
            TransportStartError: the session could not be established.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """
        Tear the session down.

        Contract:
        - Idempotent: repeated calls are safe.
        - Never raises.
        - After stop() returns, no further observer events are raised for
          the stopped session.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Helpers for implementations
    # ------------------------------------------------------------------

    def _notify_geometry(self, geometry: FrameGeometry) -> None:
        observer = self.observer
        if observer is not None:
            observer.on_frame_geometry(geometry)

    def _notify_error(self, error: BaseException) -> None:
        observer = self.observer
        if observer is not None:
            observer.on_error(error)
