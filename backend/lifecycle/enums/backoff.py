"""
Backoff policy enumeration.
"""

from __future__ import annotations

from enum import Enum


class BackoffPolicy(str, Enum):
    """
    How the delay between failed start attempts evolves.

    FIXED:
        Same delay before every retry.

    EXPONENTIAL:
        Delay multiplies after every failed attempt, capped by
        RetryPolicy.max_backoff_s.
    """

    FIXED = "fixed"
    EXPONENTIAL = "exponential"
