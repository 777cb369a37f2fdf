"""
Error taxonomy shared by configuration, transport and lifecycle layers.

- ConfigurationError: invalid parameters, detected once at construction.
- TransportStartError / TransportRuntimeError live in transport.base and
  derive from StreamViewerError as well.
"""

from __future__ import annotations


class StreamViewerError(Exception):
    """Base class for every error raised by this project."""


class ConfigurationError(StreamViewerError):
    """
    Structurally invalid configuration or connection parameters.

    Not recoverable: raised at construction / config load and never retried.
    """


def describe(error: BaseException) -> str:
    """
    Human-readable description of an error for status messages.

    Falls back to the exception type name when the message is empty.
    """
    text = str(error).strip()
    if text:
        return text
    return type(error).__name__
