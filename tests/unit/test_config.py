# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from config import AppConfig
from lifecycle.enums.backoff import BackoffPolicy
from lifecycle.errors import ConfigurationError
from lifecycle.params import H264OverTCP
from lifecycle.retry import RetryPolicy


ENV_VARS = (
    "ENV",
    "LOG_LEVEL",
    "ENABLE_JSON_LOGS",
    "CAMERA_TRANSPORT",
    "CAMERA_HOST",
    "CAMERA_PORT",
    "CAMERA_CONNECT_TIMEOUT_S",
    "STREAM_MAX_ATTEMPTS",
    "STREAM_BACKOFF_S",
    "STREAM_BACKOFF_POLICY",
    "STREAM_MAX_BACKOFF_S",
    "STOP_TRANSPORT_ON_ERROR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_point_at_the_hotspot_camera() -> None:
    config = AppConfig.load_from_env()

    assert config.env == "dev"
    assert config.enable_json_logs is True
    assert config.connection_parameters() == H264OverTCP(host="172.20.10.1", port=4444)
    assert config.camera_connect_timeout_s == 3.0
    assert config.retry_policy() == RetryPolicy(
        max_attempts=3, backoff_s=2.0, backoff=BackoffPolicy.FIXED, max_backoff_s=30.0
    )
    assert config.stop_transport_on_error is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CAMERA_HOST", "172.20.10.8")
    monkeypatch.setenv("CAMERA_PORT", "5000")
    monkeypatch.setenv("STREAM_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("STREAM_BACKOFF_S", "0.5")
    monkeypatch.setenv("STREAM_BACKOFF_POLICY", "Exponential")
    monkeypatch.setenv("STOP_TRANSPORT_ON_ERROR", "0")
    monkeypatch.setenv("ENABLE_JSON_LOGS", "0")

    config = AppConfig.load_from_env()

    assert config.connection_parameters() == H264OverTCP(host="172.20.10.8", port=5000)
    assert config.retry_policy().max_attempts == 5
    assert config.retry_policy().backoff_s == 0.5
    assert config.stream_backoff_policy is BackoffPolicy.EXPONENTIAL
    assert config.stop_transport_on_error is False
    assert config.enable_json_logs is False


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CAMERA_PORT", "http"),
        ("CAMERA_CONNECT_TIMEOUT_S", "soon"),
        ("STREAM_MAX_ATTEMPTS", "3.5"),
        ("STREAM_BACKOFF_POLICY", "jittered"),
    ],
)
def test_malformed_values_raise(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        AppConfig.load_from_env()


def test_invalid_camera_is_rejected_when_parameters_are_built(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CAMERA_TRANSPORT", "rtsp")

    config = AppConfig.load_from_env()

    with pytest.raises(ConfigurationError):
        config.connection_parameters()


def test_invalid_retry_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STREAM_MAX_ATTEMPTS", "0")

    with pytest.raises(ConfigurationError):
        AppConfig.load_from_env().retry_policy()
