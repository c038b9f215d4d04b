"""FastAPI application factory wiring the envelope conventions together."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi import FastAPI

from apienvelope.api.context import RequestContext
from apienvelope.api.routing import default_api_info_handler
from apienvelope.api.routing import default_api_internal_error_handler
from apienvelope.api.routing import default_api_not_found_handler
from apienvelope.api.routing import default_api_unauthorized_handler
from apienvelope.api.routing import default_bad_request_handler
from apienvelope.api.routing import default_method_not_allowed_handler
from apienvelope.api.routing import get
from apienvelope.api.routing import mount_api_router
from apienvelope.core.config import ApiSettings
from apienvelope.core.config import get_api_settings
from apienvelope.core.observability import setup_logging
from apienvelope.schemas.envelope import ApiResponse
from apienvelope.schemas.envelope import api_success

logger = logging.getLogger(__name__)


async def log_internal_error(ctx: RequestContext) -> None:
    """Log the failure behind a 500 response with its traceback."""
    logger.error(
        "Unhandled failure on %s",
        ctx.request.url.path,
        exc_info=ctx.failure,
        extra={"status_code": ctx.status_code, "path": ctx.request.url.path},
    )


def build_version_router(version: str) -> APIRouter:
    """Build the sub-router served under ``/api/<version>``."""
    router = APIRouter()

    async def health(_: RequestContext) -> ApiResponse:
        return api_success({"status": "ok", "version": version})

    get(router, "/health").api_handler(health)
    return router


def create_app(settings: ApiSettings | None = None) -> FastAPI:
    """Create the API application for the configured versions."""
    settings = settings or get_api_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Creating API application with settings=%s", settings.safe_for_logging())

    app = FastAPI(title="apienvelope", version=settings.current_api_version)
    default_api_not_found_handler(app)
    default_api_unauthorized_handler(app)
    default_method_not_allowed_handler(app)
    default_bad_request_handler(app)
    default_api_internal_error_handler(app, log_internal_error)

    default_api_info_handler(app, settings.current_api_version, settings.supported_api_versions)
    for version in settings.supported_api_versions:
        mount_api_router(app, version, build_version_router(version))
    return app
