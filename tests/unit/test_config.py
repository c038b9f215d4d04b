"""Unit tests for environment-driven API settings."""

from __future__ import annotations

import pytest

from apienvelope.core.config import ApiSettings
from apienvelope.core.config import get_api_settings
from apienvelope.core.config import load_api_settings


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "APIENVELOPE_CURRENT_API_VERSION",
        "APIENVELOPE_SUPPORTED_API_VERSIONS",
        "APIENVELOPE_LOG_LEVEL",
        "APIENVELOPE_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_api_settings.cache_clear()


def test_defaults_serve_a_single_version() -> None:
    settings = load_api_settings()

    assert settings.current_api_version == "v1"
    assert settings.supported_api_versions == ("v1",)
    assert settings.log_level == "INFO"
    assert settings.log_format == "text"


def test_settings_are_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APIENVELOPE_CURRENT_API_VERSION", "v2")
    monkeypatch.setenv("APIENVELOPE_SUPPORTED_API_VERSIONS", "v1, v2,")
    monkeypatch.setenv("APIENVELOPE_LOG_LEVEL", "debug")
    monkeypatch.setenv("APIENVELOPE_LOG_FORMAT", "JSON")

    settings = load_api_settings()

    assert settings.safe_for_logging() == {
        "current_api_version": "v2",
        "supported_api_versions": ["v1", "v2"],
        "log_level": "DEBUG",
        "log_format": "json",
    }


def test_current_version_must_be_supported() -> None:
    with pytest.raises(ValueError, match="not one of the supported versions"):
        ApiSettings(current_api_version="v3", supported_api_versions=("v1", "v2"))


def test_unknown_log_format_is_rejected() -> None:
    with pytest.raises(ValueError, match="log_format"):
        ApiSettings(current_api_version="v1", supported_api_versions=("v1",), log_format="xml")


def test_get_api_settings_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_api_settings()
    monkeypatch.setenv("APIENVELOPE_CURRENT_API_VERSION", "v9")
    monkeypatch.setenv("APIENVELOPE_SUPPORTED_API_VERSIONS", "v9")

    assert get_api_settings() is first
