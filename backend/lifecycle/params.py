"""
Connection parameters (closed tagged variant over transport kinds).

Rules:
- One frozen dataclass per TransportKind; `kind` is the discriminant.
- Parameters are immutable once the lifecycle manager is constructed.
- Structural validation happens here; it never touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from lifecycle.enums.transport_kind import TransportKind
from lifecycle.errors import ConfigurationError

from constants import PORT_MAX, PORT_MIN


# =============================================================================
# Variants
# =============================================================================

@dataclass(frozen=True)
class H264OverTCP:
    """Raw H.264 stream served on a TCP port."""
    host: str
    port: int
    kind: TransportKind = TransportKind.H264_TCP

    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"


# Extend with `Union[H264OverTCP, NewVariant]` when a stream type is added.
ConnectionParameters = Union[H264OverTCP]


# =============================================================================
# Construction / validation
# =============================================================================

def build_parameters(kind: str | TransportKind, host: str, port: int) -> ConnectionParameters:
    """
    Build a validated ConnectionParameters variant from loose values.

    Raises:
        ConfigurationError: unknown kind, empty host or out-of-range port.
    """
    try:
        resolved = TransportKind(kind)
    except ValueError as exc:
        raise ConfigurationError(f"unsupported transport kind: {kind!r}") from exc

    if resolved is TransportKind.H264_TCP:
        params = H264OverTCP(host=host, port=port)
    else:  # pragma: no cover - every enum member has a branch
        raise ConfigurationError(f"no parameters variant for {resolved.value}")

    validate_parameters(params)
    return params


def validate_parameters(params: ConnectionParameters) -> None:
    """
    Fail fast on structurally invalid parameters.

    Raises:
        ConfigurationError
    """
    if not isinstance(params, H264OverTCP):
        raise ConfigurationError(
            f"unsupported connection parameters: {type(params).__name__}"
        )

    if params.kind is not TransportKind.H264_TCP:
        raise ConfigurationError(f"mismatched transport kind: {params.kind!r}")

    if not isinstance(params.host, str) or not params.host.strip():
        raise ConfigurationError("host must be a non-empty string")

    # bool is an int subclass; a True port is a config bug, not port 1
    if isinstance(params.port, bool) or not isinstance(params.port, int):
        raise ConfigurationError(f"port must be an integer, got {params.port!r}")

    if not PORT_MIN <= params.port <= PORT_MAX:
        raise ConfigurationError(
            f"port {params.port} outside {PORT_MIN}..{PORT_MAX}"
        )
