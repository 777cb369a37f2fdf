"""
Session status enumeration.

Rules:
- This enum defines ONLY the published session states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the lifecycle reducer.
"""

from __future__ import annotations

from enum import Enum


class StatusKind(str, Enum):
    """
    Externally visible state of the camera stream session.

    Exactly one value is current at any instant. The loading flag is
    published alongside it but is not part of this enum.
    """

    IDLE = "IDLE"
    LOADING = "LOADING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
