"""
Transport kind enumeration.

Rules:
- One member per supported stream type.
- Adding a member requires a matching ConnectionParameters variant and a
  factory branch; the lifecycle manager contract does not change.
"""

from __future__ import annotations

from enum import Enum


class TransportKind(str, Enum):
    """
    Discriminant for ConnectionParameters variants.

    H264_TCP:
        Raw Annex-B H.264 elementary stream pushed over a plain TCP socket.
    """

    H264_TCP = "h264"
