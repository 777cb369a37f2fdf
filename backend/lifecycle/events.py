"""
Event definitions for the lifecycle reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Sequence events carry the run_id of the start() sequence that produced them
so results arriving after stop() can be gated out.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (status, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Presentation layer control
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    STOP_REQUESTED = "STOP_REQUESTED"

    # ------------------------------------------------------------------
    # Start sequence (produced by the manager while driving attempts)
    # ------------------------------------------------------------------
    ATTEMPT_SUCCEEDED = "ATTEMPT_SUCCEEDED"
    ATTEMPT_FAILED = "ATTEMPT_FAILED"
    BACKOFF_ELAPSED = "BACKOFF_ELAPSED"

    # ------------------------------------------------------------------
    # Transport observer (marshalled through the event channel)
    # ------------------------------------------------------------------
    FRAME_GEOMETRY_DETECTED = "FRAME_GEOMETRY_DETECTED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class SequenceEvent(Event):
    """
    Base class for events produced by one start() sequence.

    The reducer MUST ignore sequence events whose run_id does not match
    the active sequence, or that arrive when no sequence is loading.
    """

    run_id: int


# =============================================================================
# Control Events
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """Presentation layer asked for the stream to start."""


@dataclass(frozen=True)
class StopRequested(Event):
    """Presentation layer asked for the stream to stop."""


# =============================================================================
# Sequence Events
# =============================================================================

@dataclass(frozen=True)
class AttemptSucceeded(SequenceEvent):
    """Transport start() returned normally."""
    attempt: int


@dataclass(frozen=True)
class AttemptFailed(SequenceEvent):
    """Transport start() raised."""
    attempt: int
    reason: str


@dataclass(frozen=True)
class BackoffElapsed(SequenceEvent):
    """Backoff timer for the sequence expired without being cancelled."""


# =============================================================================
# Transport Observer Events
# =============================================================================

@dataclass(frozen=True)
class FrameGeometryDetected(Event):
    """
    Transport detected the media size of the stream.

    Informational only; may be dropped under backpressure.
    """
    width: int
    height: int


@dataclass(frozen=True)
class TransportErrorRaised(Event):
    """
    Transport reported an error asynchronously.

    May arrive during the retry loop (held against the in-flight attempt)
    or while RUNNING (fatal to the session). Never dropped.
    """
    reason: str
