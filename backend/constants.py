"""
BEHAVIOURAL CONSTANTS
---------------------
Single source of truth for every number that changes runtime behaviour.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (host, port, overrides) live in config.py and
  default to the values below.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Camera endpoint defaults
# =============================================================================

# The camera joins the viewer's hotspot and always answers on this address.
DEFAULT_CAMERA_HOST: Final[str] = "172.20.10.1"
DEFAULT_CAMERA_PORT: Final[int] = 4444
DEFAULT_TRANSPORT_KIND: Final[str] = "h264"

PORT_MIN: Final[int] = 1
PORT_MAX: Final[int] = 65_535

# =============================================================================
# Transport I/O
# =============================================================================

CONNECT_TIMEOUT_S: Final[float] = 3.0
READ_CHUNK_BYTES: Final[int] = 64 * 1024

# =============================================================================
# Retry policy
# =============================================================================

MAX_START_ATTEMPTS: Final[int] = 3
BACKOFF_S: Final[float] = 2.0
MAX_BACKOFF_S: Final[float] = 30.0
EXPONENTIAL_BACKOFF_FACTOR: Final[float] = 2.0

# =============================================================================
# Status messages
# =============================================================================

RETRY_BUDGET_EXCEEDED_MESSAGE: Final[str] = "exceeded retry budget"

# =============================================================================
# Event channel backpressure
# =============================================================================

# Geometry events beyond this many pending are dropped; errors never are.
GEOMETRY_BACKLOG_MAX: Final[int] = 8

# =============================================================================
# Status push (WebSocket)
# =============================================================================

STATUS_PUSH_QUEUE_MAX: Final[int] = 64
