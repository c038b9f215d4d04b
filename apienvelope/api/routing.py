"""Route handler chains, status-code error handlers and versioned API mounting.

Every function here only populates the routing table or the app's exception
handler table and returns the object it was given, so calls can be chained.
Only one error handler exists per status code; registering again replaces it.
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Sequence
import inspect
import logging
from typing import TypeVar
from typing import Union

from fastapi import status
from fastapi.exception_handlers import http_exception_handler
from starlette.applications import Starlette
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.responses import Response
from starlette.routing import Router
from starlette.types import Receive
from starlette.types import Scope
from starlette.types import Send

from apienvelope.api.context import RequestCallback
from apienvelope.api.context import RequestContext
from apienvelope.api.context import run_failure
from apienvelope.api.context import replay_request
from apienvelope.api.context import run_request
from apienvelope.api.handlers import ApiRequestHandler
from apienvelope.api.handlers import SuspendRequestHandler
from apienvelope.api.handlers import call_handler
from apienvelope.api.handlers import wrap_api_handler
from apienvelope.api.handlers import wrap_handler
from apienvelope.core.errors import RequestFailed
from apienvelope.core.errors import status_phrase
from apienvelope.schemas.catalog import api_bad_request_error
from apienvelope.schemas.catalog import api_internal_error
from apienvelope.schemas.catalog import api_method_not_allowed_error
from apienvelope.schemas.catalog import api_not_found_error
from apienvelope.schemas.catalog import api_unauthorized_error
from apienvelope.schemas.envelope import ApiErrorResponse
from apienvelope.schemas.envelope import ApiResponse
from apienvelope.schemas.envelope import api_info_success

logger = logging.getLogger(__name__)

RouterT = TypeVar("RouterT", bound=Union[Starlette, Router])
AppT = TypeVar("AppT", bound=Starlette)


class ApiRoute:
    """ASGI endpoint running an ordered chain of handlers for one path."""

    def __init__(self, path: str, methods: Sequence[str] | None = None) -> None:
        self.path = path
        self.methods = list(methods) if methods else None
        self._handlers: list[RequestCallback] = []

    def handler(self, callback: RequestCallback) -> ApiRoute:
        """Append a raw synchronous callback to the chain."""
        self._handlers.append(callback)
        return self

    def suspend_handler(self, request_handler: SuspendRequestHandler) -> ApiRoute:
        """Append an async request handler to the chain."""
        return self.handler(wrap_handler(request_handler))

    def api_handler(self, request_handler: ApiRequestHandler) -> ApiRoute:
        """Append an API handler whose returned envelope becomes the response."""
        return self.handler(wrap_api_handler(request_handler))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        ctx = await run_request(self._handlers, scope, receive, send)

        if ctx.response.ended:
            return
        if ctx.disconnected:
            logger.info("Client disconnected from %s before a response was written", ctx.request.url.path)
            return
        request = replay_request(ctx, receive)
        if ctx.failed:
            raise RequestFailed(ctx.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR, ctx.failure, request=request)

        # The chain settled without writing anything.
        raise RequestFailed(status.HTTP_404_NOT_FOUND, request=request)


def route(router: Starlette | Router, path: str, methods: Sequence[str] | None = None) -> ApiRoute:
    """Register a handler chain for ``path`` and return it for handler registration."""
    api_route = ApiRoute(path, methods)
    router.add_route(path, api_route, methods=api_route.methods)
    return api_route


def get(router: Starlette | Router, path: str) -> ApiRoute:
    return route(router, path, methods=["GET"])


def post(router: Starlette | Router, path: str) -> ApiRoute:
    return route(router, path, methods=["POST"])


def put(router: Starlette | Router, path: str) -> ApiRoute:
    return route(router, path, methods=["PUT"])


def patch(router: Starlette | Router, path: str) -> ApiRoute:
    return route(router, path, methods=["PATCH"])


def delete(router: Starlette | Router, path: str) -> ApiRoute:
    return route(router, path, methods=["DELETE"])


async def route_request_failure(request: Request, exc: RequestFailed) -> Response:
    """Send a failed request to the error handler registered for its status code.

    Starlette keeps the 500 handler outside of its status-code table, so
    failures signalled by handlers are dispatched from here.
    """
    handler = request.app.exception_handlers.get(exc.status_code)
    if handler is None:
        return await http_exception_handler(request, exc)

    response = handler(request, exc)
    if inspect.isawaitable(response):
        response = await response
    return response


def suspend_error_handler(app: AppT, status_code: int, error_handler: SuspendRequestHandler) -> AppT:
    """Handle failures with ``status_code`` using an async request handler.

    The handler runs when a request fails with that status, including
    exceptions raised inside handlers (500). It must write the response
    itself and must not call ``ctx.next()``.
    """
    _register_failure_callback(app, status_code, wrap_handler(error_handler))
    return app


def api_error_handler(app: AppT, status_code: int, error_handler: ApiRequestHandler) -> AppT:
    """Handle failures with ``status_code`` using an API handler."""
    _register_failure_callback(app, status_code, wrap_api_handler(error_handler))
    return app


def mount_api_router(router: RouterT, version: str, api_router: Router) -> RouterT:
    """Mount the router of one API version under ``/api/<version>``."""
    router.mount(f"/api/{version}", app=api_router)
    return router


def default_api_info_handler(router: RouterT, current_version: str, supported_versions: Sequence[str]) -> RouterT:
    """Serve the current and supported API versions at ``GET /api``."""
    versions = tuple(supported_versions)

    async def api_info(_: RequestContext) -> ApiResponse:
        return api_info_success(current_version, versions)

    get(router, "/api").api_handler(api_info)
    return router


def default_api_not_found_handler(app: AppT) -> AppT:
    return api_error_handler(app, status.HTTP_404_NOT_FOUND, _catalog_handler(api_not_found_error))


def default_api_unauthorized_handler(app: AppT) -> AppT:
    return api_error_handler(app, status.HTTP_403_FORBIDDEN, _catalog_handler(api_unauthorized_error))


def default_method_not_allowed_handler(app: AppT) -> AppT:
    return api_error_handler(app, status.HTTP_405_METHOD_NOT_ALLOWED, _catalog_handler(api_method_not_allowed_error))


def default_bad_request_handler(app: AppT) -> AppT:
    return api_error_handler(app, status.HTTP_400_BAD_REQUEST, _catalog_handler(api_bad_request_error))


def default_api_internal_error_handler(app: AppT, error_handler: SuspendRequestHandler | None = None) -> AppT:
    """Answer 500 failures with the ``internal_error`` envelope.

    Nothing is logged here; pass ``error_handler`` to observe the failure
    (``ctx.failure``) before the envelope is sent. Exceptions raised by
    ``error_handler`` are logged and do not change the response.
    """

    async def internal_error(ctx: RequestContext) -> ApiResponse:
        if error_handler is not None:
            try:
                await call_handler(error_handler, ctx)
            except Exception:
                logger.exception("Internal error handler raised while handling %s", ctx.request.url.path)
        return api_internal_error()

    return api_error_handler(app, status.HTTP_500_INTERNAL_SERVER_ERROR, internal_error)


def _catalog_handler(factory: Callable[[], ApiErrorResponse]) -> ApiRequestHandler:
    async def handle(_: RequestContext) -> ApiResponse:
        return factory()

    return handle


def _register_failure_callback(app: Starlette, status_code: int, callback: RequestCallback) -> None:
    async def failure_endpoint(request: Request, exc: Exception) -> Response:
        ctx = await run_failure((callback,), request, exc)
        response = ctx.response.response
        if response is None:
            fallback_status = ctx.status_code or status_code
            logger.warning("Error handler for status %s wrote no response for %s", status_code, request.url.path)
            response = PlainTextResponse(status_phrase(fallback_status), status_code=fallback_status)

        if isinstance(exc, StarletteHTTPException) and exc.headers:
            response.headers.update(exc.headers)
        return response

    app.add_exception_handler(status_code, failure_endpoint)
    app.add_exception_handler(RequestFailed, route_request_failure)
