"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No lifecycle logic
- No behavioural constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, TypeVar

from lifecycle.enums.backoff import BackoffPolicy
from lifecycle.errors import ConfigurationError
from lifecycle.params import ConnectionParameters, build_parameters
from lifecycle.retry import RetryPolicy

from constants import (
    BACKOFF_S,
    CONNECT_TIMEOUT_S,
    DEFAULT_CAMERA_HOST,
    DEFAULT_CAMERA_PORT,
    DEFAULT_TRANSPORT_KIND,
    MAX_BACKOFF_S,
    MAX_START_ATTEMPTS,
)


T = TypeVar("T")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory, which builds the lifecycle manager.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Camera
    # ------------------------------------------------------------------

    camera_transport: str
    camera_host: str
    camera_port: int
    camera_connect_timeout_s: float

    # ------------------------------------------------------------------
    # Start retries
    # ------------------------------------------------------------------

    stream_max_attempts: int
    stream_backoff_s: float
    stream_backoff_policy: BackoffPolicy
    stream_max_backoff_s: float
    stop_transport_on_error: bool

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def connection_parameters(self) -> ConnectionParameters:
        """
        Raises:
            ConfigurationError: unknown transport, empty host, bad port.
        """
        return build_parameters(self.camera_transport, self.camera_host, self.camera_port)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.stream_max_attempts,
            backoff_s=self.stream_backoff_s,
            backoff=self.stream_backoff_policy,
            max_backoff_s=self.stream_max_backoff_s,
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ConfigurationError if a value is present but malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            camera_transport=os.environ.get("CAMERA_TRANSPORT", DEFAULT_TRANSPORT_KIND),
            camera_host=os.environ.get("CAMERA_HOST", DEFAULT_CAMERA_HOST),
            camera_port=_env("CAMERA_PORT", int, DEFAULT_CAMERA_PORT),
            camera_connect_timeout_s=_env(
                "CAMERA_CONNECT_TIMEOUT_S", float, CONNECT_TIMEOUT_S
            ),

            stream_max_attempts=_env("STREAM_MAX_ATTEMPTS", int, MAX_START_ATTEMPTS),
            stream_backoff_s=_env("STREAM_BACKOFF_S", float, BACKOFF_S),
            stream_backoff_policy=_env(
                "STREAM_BACKOFF_POLICY",
                lambda raw: BackoffPolicy(raw.lower()),
                BackoffPolicy.FIXED,
            ),
            stream_max_backoff_s=_env("STREAM_MAX_BACKOFF_S", float, MAX_BACKOFF_S),
            stop_transport_on_error=os.environ.get("STOP_TRANSPORT_ON_ERROR", "1") == "1",
        )


def _env(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"invalid {name}: {raw!r}") from exc
