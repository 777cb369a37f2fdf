"""
Side-effect command definitions for the lifecycle reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the manager.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and dispatch.
    """

    # Transport
    ATTEMPT_TRANSPORT_START = "ATTEMPT_TRANSPORT_START"
    STOP_TRANSPORT = "STOP_TRANSPORT"

    # Timers
    SCHEDULE_BACKOFF = "SCHEDULE_BACKOFF"
    CANCEL_BACKOFF = "CANCEL_BACKOFF"

    # Hooks
    NOTIFY_FRAME_GEOMETRY = "NOTIFY_FRAME_GEOMETRY"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class AttemptTransportStart(Command):
    """
    Call transport start() once for the given sequence.

    The manager must answer with exactly one AttemptSucceeded or
    AttemptFailed carrying the same run_id.
    """
    run_id: int
    attempt_number: int  # 1-based
    command_type: CommandType = CommandType.ATTEMPT_TRANSPORT_START


@dataclass(frozen=True)
class StopTransport(Command):
    """Call transport stop() (idempotent, never fails)."""
    reason: str
    command_type: CommandType = CommandType.STOP_TRANSPORT


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class ScheduleBackoff(Command):
    """
    Wait delay_s cooperatively, then emit BackoffElapsed(run_id).

    The wait must yield to the event loop and be cancellable by
    CancelBackoff.
    """
    run_id: int
    delay_s: float
    command_type: CommandType = CommandType.SCHEDULE_BACKOFF


@dataclass(frozen=True)
class CancelBackoff(Command):
    """Cancel a pending backoff wait, if any. Idempotent."""
    command_type: CommandType = CommandType.CANCEL_BACKOFF


# =============================================================================
# Hook Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyFrameGeometry(Command):
    """Forward detected geometry to the optional hook."""
    width: int
    height: int
    command_type: CommandType = CommandType.NOTIFY_FRAME_GEOMETRY


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
