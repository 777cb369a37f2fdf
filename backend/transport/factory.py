"""
Transport factory.

Maps each ConnectionParameters variant to its StreamTransport.
"""

from __future__ import annotations

from typing import Callable

from lifecycle.errors import ConfigurationError
from lifecycle.params import ConnectionParameters, H264OverTCP

from transport.base import StreamTransport
from transport.h264_tcp import H264TcpTransport

from constants import CONNECT_TIMEOUT_S


TransportFactory = Callable[[ConnectionParameters], StreamTransport]


def create_transport(
    params: ConnectionParameters,
    *,
    connect_timeout_s: float = CONNECT_TIMEOUT_S,
) -> StreamTransport:
    """
    Build the transport for a parameters variant.

    Raises:
        ConfigurationError: no transport for this variant.
    """
    if isinstance(params, H264OverTCP):
        return H264TcpTransport(params, connect_timeout_s=connect_timeout_s)

    raise ConfigurationError(
        f"no transport for parameters {type(params).__name__}"
    )
