"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os

DEFAULT_CURRENT_API_VERSION = "v1"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "text"
LOG_FORMATS = frozenset({"text", "json"})


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class ApiSettings:
    """Runtime settings for the versioned API surface and its logging."""

    current_api_version: str
    supported_api_versions: tuple[str, ...]
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT

    def __post_init__(self) -> None:
        if not self.current_api_version:
            raise ValueError("current_api_version is required")
        if self.current_api_version not in self.supported_api_versions:
            raise ValueError(
                f"current_api_version {self.current_api_version!r} is not one of the supported versions "
                f"{list(self.supported_api_versions)!r}"
            )
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {sorted(LOG_FORMATS)}")

    def safe_for_logging(self) -> dict[str, str | list[str]]:
        """Return settings as a plain dict for logs."""
        return {
            "current_api_version": self.current_api_version,
            "supported_api_versions": list(self.supported_api_versions),
            "log_level": self.log_level,
            "log_format": self.log_format,
        }


def load_api_settings() -> ApiSettings:
    """Read API settings from the environment."""
    current = os.getenv("APIENVELOPE_CURRENT_API_VERSION", DEFAULT_CURRENT_API_VERSION)
    return ApiSettings(
        current_api_version=current,
        supported_api_versions=_get_list_env("APIENVELOPE_SUPPORTED_API_VERSIONS", (current,)),
        log_level=os.getenv("APIENVELOPE_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        log_format=os.getenv("APIENVELOPE_LOG_FORMAT", DEFAULT_LOG_FORMAT).lower(),
    )


@lru_cache(maxsize=1)
def get_api_settings() -> ApiSettings:
    """Load API settings once per process."""
    return load_api_settings()
