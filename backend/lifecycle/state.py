"""
Authoritative lifecycle state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the lifecycle reducer may ever need.
- No behavior beyond the published snapshot projection.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from lifecycle.retry import RetryAttempt, RetryPolicy
from lifecycle.status import SessionStatus, StatusSnapshot


@dataclass(frozen=True)
class LifecycleState:
    """Immutable snapshot of all manager-owned lifecycle state."""

    # ------------------------------------------------------------------
    # Published status
    # ------------------------------------------------------------------
    status: SessionStatus = field(default_factory=SessionStatus)
    is_loading: bool = False

    # ------------------------------------------------------------------
    # Start sequence bookkeeping
    # ------------------------------------------------------------------
    # Bumped on every accepted start(); never reused.
    active_run_id: int = 0
    retry_attempt: RetryAttempt = RetryAttempt(attempt=0)

    # ------------------------------------------------------------------
    # Policy (fixed at manager construction)
    # ------------------------------------------------------------------
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    # Stop the transport before surfacing a runtime error as FAILED.
    stop_transport_on_runtime_error: bool = True

    # Error reported by the session of the attempt in flight. Cleared
    # whenever a new attempt is issued or an attempt fails.
    attempt_error: str | None = None

    # ------------------------------------------------------------------
    # Informational
    # ------------------------------------------------------------------
    last_frame_geometry: tuple[int, int] | None = None

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(status=self.status, is_loading=self.is_loading)
