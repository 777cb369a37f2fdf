"""
Pure lifecycle reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (status, event) pair is handled or explicitly ignored (logged).

Status transitions:
    IDLE    --StartRequested-->      LOADING
    FAILED  --StartRequested-->      LOADING
    LOADING --AttemptSucceeded-->    RUNNING
    LOADING --AttemptSucceeded-->    FAILED(reason) if the attempt's session
                                     already reported an error
    LOADING --AttemptFailed (last)-> FAILED("exceeded retry budget")
    LOADING --StopRequested-->       IDLE
    RUNNING --StopRequested-->       IDLE
    RUNNING --TransportError-->      FAILED(reason)
    FAILED  --StopRequested-->       FAILED (transport still stopped)
    IDLE    --StopRequested-->       IDLE   (transport still stopped)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

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
from lifecycle.events import (
    AttemptFailed,
    AttemptSucceeded,
    BackoffElapsed,
    Event,
    FrameGeometryDetected,
    SequenceEvent,
    StartRequested,
    StopRequested,
    TransportErrorRaised,
)
from lifecycle.retry import (
    get_retry_delay_s,
    next_attempt,
    reset_attempt,
    should_retry,
)
from lifecycle.state import LifecycleState
from lifecycle.status import SessionStatus

from constants import RETRY_BUDGET_EXCEEDED_MESSAGE


Result = tuple[LifecycleState, tuple[Command, ...]]


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: LifecycleState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "status": state.status.kind.value,
            "is_loading": state.is_loading,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_id": state.active_run_id,
            "attempt": state.retry_attempt.attempt,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    """Side effects first, then logs; state_changed logs go last."""
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _state_changed(
    old: LifecycleState,
    new: LifecycleState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_status": old.status.kind.value,
            "to_status": new.status.kind.value,
            "message": new.status.message,
            "source": source,
        },
    )


def _ignore(state: LifecycleState, event: Event, reason: str) -> Result:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _is_current(state: LifecycleState, event: SequenceEvent) -> bool:
    return state.is_loading and event.run_id == state.active_run_id


# =============================================================================
# Reducer
# =============================================================================

def reduce(state: LifecycleState, event: Event) -> Result:
    """
    Pure reducer for the stream session lifecycle.

    Given the current lifecycle state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (status, event) pair is handled or explicitly ignored
    - Version-safe: ignores sequence events with stale run IDs
    """
    if isinstance(event, StartRequested):
        return _on_start_requested(state, event)

    if isinstance(event, StopRequested):
        return _on_stop_requested(state, event)

    if isinstance(event, SequenceEvent):
        if not _is_current(state, event):
            return _on_stale_sequence_event(state, event)

        if isinstance(event, AttemptSucceeded):
            return _on_attempt_succeeded(state, event)

        if isinstance(event, AttemptFailed):
            return _on_attempt_failed(state, event)

        if isinstance(event, BackoffElapsed):
            return _on_backoff_elapsed(state, event)

    if isinstance(event, FrameGeometryDetected):
        new_state = replace(state, last_frame_geometry=(event.width, event.height))
        return new_state, (
            NotifyFrameGeometry(width=event.width, height=event.height),
            _log(
                new_state,
                event,
                "frame_geometry",
                {"width": event.width, "height": event.height},
            ),
        )

    if isinstance(event, TransportErrorRaised):
        return _on_transport_error(state, event)

    return _ignore(state, event, "unhandled_event")


# =============================================================================
# Control
# =============================================================================

def _on_start_requested(state: LifecycleState, event: StartRequested) -> Result:
    if state.status.kind is StatusKind.RUNNING:
        return _ignore(state, event, "already_running")

    if state.is_loading:
        return _ignore(state, event, "sequence_in_flight")

    run_id = state.active_run_id + 1
    new_state = replace(
        state,
        status=SessionStatus(kind=StatusKind.LOADING),
        is_loading=True,
        active_run_id=run_id,
        retry_attempt=reset_attempt(),
        attempt_error=None,
    )

    return new_state, _logs_last((
        AttemptTransportStart(run_id=run_id, attempt_number=1),
        _state_changed(state, new_state, event, "start_requested"),
        _log(
            new_state,
            event,
            "sequence_started",
            {"max_attempts": state.retry_policy.max_attempts},
        ),
    ))


def _on_stop_requested(state: LifecycleState, event: StopRequested) -> Result:
    # Transport stop() is idempotent and always invoked.
    stop = StopTransport(reason="stop_requested")

    if state.is_loading or state.status.kind is StatusKind.RUNNING:
        new_state = replace(
            state,
            status=SessionStatus(kind=StatusKind.IDLE),
            is_loading=False,
        )
        cmds: tuple[Command, ...] = (stop,)
        if state.is_loading:
            cmds = (CancelBackoff(),) + cmds
        return new_state, _logs_last(cmds + (
            _state_changed(state, new_state, event, "stop_requested"),
            _log(
                new_state,
                event,
                "session_stopped",
                {"abandoned_sequence": state.is_loading},
            ),
        ))

    if state.status.kind is StatusKind.FAILED:
        return state, (
            stop,
            _log(state, event, "stop_keeps_failure", {"message": state.status.message}),
        )

    return state, (stop, _log(state, event, "stop_noop"))


# =============================================================================
# Start sequence
# =============================================================================

def _on_stale_sequence_event(state: LifecycleState, event: SequenceEvent) -> Result:
    if isinstance(event, AttemptSucceeded):
        # The abandoned attempt brought the transport up after stop();
        # take it down again instead of flipping status to RUNNING.
        return state, (
            StopTransport(reason="stale_attempt_succeeded"),
            _log(
                state,
                event,
                "stale_success_stopped",
                {"stale_run_id": event.run_id},
            ),
        )

    return _ignore(state, event, f"stale_run_id:{event.run_id}")


def _on_attempt_succeeded(state: LifecycleState, event: AttemptSucceeded) -> Result:
    if state.attempt_error is not None:
        # The session died before start() returned; its error was applied
        # first. Surface it now instead of reporting RUNNING.
        return _fail_running_session(
            state,
            event,
            reason=state.attempt_error,
            source="attempt_succeeded_after_error",
        )

    new_state = replace(
        state,
        status=SessionStatus(kind=StatusKind.RUNNING),
        is_loading=False,
    )
    return new_state, _logs_last((
        _state_changed(state, new_state, event, "attempt_succeeded"),
        _log(new_state, event, "attempt_succeeded", {"attempt_number": event.attempt}),
    ))


def _on_attempt_failed(state: LifecycleState, event: AttemptFailed) -> Result:
    policy = state.retry_policy
    attempt = next_attempt(state.retry_attempt)

    if should_retry(policy=policy, attempt=attempt):
        delay_s = get_retry_delay_s(policy=policy, attempt=attempt)
        new_state = replace(
            state,
            status=SessionStatus(kind=StatusKind.LOADING, message=event.reason),
            retry_attempt=attempt,
            attempt_error=None,
        )
        return new_state, _logs_last((
            ScheduleBackoff(run_id=state.active_run_id, delay_s=delay_s),
            _log(
                new_state,
                event,
                "retry_scheduled",
                {"reason": event.reason, "delay_s": delay_s},
            ),
        ))

    new_state = replace(
        state,
        status=SessionStatus(
            kind=StatusKind.FAILED,
            message=RETRY_BUDGET_EXCEEDED_MESSAGE,
        ),
        is_loading=False,
        retry_attempt=attempt,
        attempt_error=None,
    )
    return new_state, _logs_last((
        _state_changed(state, new_state, event, "retry_budget_exhausted"),
        _log(
            new_state,
            event,
            "retry_budget_exhausted",
            {"last_reason": event.reason, "attempts": attempt.attempt},
        ),
    ))


def _on_backoff_elapsed(state: LifecycleState, event: BackoffElapsed) -> Result:
    attempt_number = state.retry_attempt.attempt + 1
    new_state = replace(state, attempt_error=None)
    return new_state, (
        AttemptTransportStart(run_id=state.active_run_id, attempt_number=attempt_number),
        _log(new_state, event, "retry_attempt", {"attempt_number": attempt_number}),
    )


# =============================================================================
# Transport observer
# =============================================================================

def _fail_running_session(
    state: LifecycleState,
    event: Event,
    *,
    reason: str,
    source: str,
) -> Result:
    """Surface a session-level transport error as FAILED(reason)."""
    new_state = replace(
        state,
        status=SessionStatus(kind=StatusKind.FAILED, message=reason),
        is_loading=False,
        attempt_error=None,
    )
    cmds: tuple[Command, ...] = ()
    if state.stop_transport_on_runtime_error:
        cmds = (StopTransport(reason="runtime_error"),)
    return new_state, _logs_last(cmds + (
        _state_changed(state, new_state, event, source),
        _log(
            new_state,
            event,
            "runtime_error",
            {
                "reason": reason,
                "transport_stopped": state.stop_transport_on_runtime_error,
            },
        ),
    ))


def _on_transport_error(state: LifecycleState, event: TransportErrorRaised) -> Result:
    if state.status.kind is StatusKind.RUNNING:
        return _fail_running_session(
            state, event, reason=event.reason, source="runtime_error"
        )

    if state.is_loading:
        # Only the in-flight attempt owns a session. If that attempt still
        # succeeds, the recorded error turns the success into FAILED.
        new_state = replace(state, attempt_error=event.reason)
        return new_state, (
            _log(new_state, event, "error_during_attempt", {"reason": event.reason}),
        )

    return state, (
        _log(
            state,
            event,
            "ignore",
            {"reason": "no_active_session", "error": event.reason},
        ),
    )
