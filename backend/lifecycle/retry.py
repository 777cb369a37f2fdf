"""
Retry policy helpers.

Purpose:
- Centralize start-attempt retry rules
- Keep the lifecycle reducer pure
- Allow the manager to make deterministic backoff decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from lifecycle.enums.backoff import BackoffPolicy
from lifecycle.errors import ConfigurationError

from constants import (
    BACKOFF_S,
    EXPONENTIAL_BACKOFF_FACTOR,
    MAX_BACKOFF_S,
    MAX_START_ATTEMPTS,
)


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry policy for one start() sequence.

    max_attempts counts every transport start() call, including the first.
    """
    max_attempts: int = MAX_START_ATTEMPTS
    backoff_s: float = BACKOFF_S
    backoff: BackoffPolicy = BackoffPolicy.FIXED
    max_backoff_s: float = MAX_BACKOFF_S

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.backoff_s < 0:
            raise ConfigurationError("backoff_s must be >= 0")
        if self.max_backoff_s < self.backoff_s:
            raise ConfigurationError("max_backoff_s must be >= backoff_s")


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable failed-attempt counter.

    Semantics:
    - attempt == 0 before the first transport start() of a sequence.
    - attempt == N after N failed transport start() calls.
    - Reset to zero at the beginning of every start() sequence.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


def should_retry(*, policy: RetryPolicy, attempt: RetryAttempt) -> bool:
    """
    Returns True if another transport start() is allowed.

    attempt = number of failed attempts already performed
    """
    return attempt.attempt < policy.max_attempts


# =============================================================================
# Delay Calculation
# =============================================================================

def get_retry_delay_s(*, policy: RetryPolicy, attempt: RetryAttempt) -> float:
    """
    Returns the delay to wait after failed attempt N before attempt N+1.

    FIXED: backoff_s every time
    EXPONENTIAL: backoff_s * factor**(N-1), clamped to max_backoff_s
    """
    if policy.backoff is BackoffPolicy.FIXED:
        return policy.backoff_s

    exponent = max(attempt.attempt - 1, 0)
    delay = policy.backoff_s * (EXPONENTIAL_BACKOFF_FACTOR ** exponent)
    return min(delay, policy.max_backoff_s)
