"""Shared pytest fixtures for apienvelope test suites."""

from collections.abc import Generator
from pathlib import Path
import sys
from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

if TYPE_CHECKING:
    from apienvelope.core.config import ApiSettings


@pytest.fixture
def api_settings() -> "ApiSettings":
    """Provide settings serving two API versions."""
    from apienvelope.core.config import ApiSettings

    return ApiSettings(current_api_version="v2", supported_api_versions=("v1", "v2"))


@pytest.fixture
def client(api_settings: "ApiSettings") -> Generator[TestClient, None, None]:
    """Provide a test client for the application built by the factory."""
    from apienvelope.main import create_app

    with TestClient(create_app(api_settings)) as test_client:
        yield test_client
