"""Adapters turning async request handlers into route chain callbacks."""

from __future__ import annotations

from collections.abc import Awaitable
import inspect
import logging
from typing import Any
from typing import Optional
from typing import Protocol
from typing import TypeVar

from apienvelope.api.context import RequestCallback
from apienvelope.api.context import RequestContext
from apienvelope.schemas.envelope import JSON_CONTENT_TYPE
from apienvelope.schemas.envelope import ApiResponse

logger = logging.getLogger(__name__)

E_contra = TypeVar("E_contra", contravariant=True)
R_co = TypeVar("R_co", covariant=True)


class SuspendHandler(Protocol[E_contra, R_co]):
    """Async handler of an event, producing a result."""

    def __call__(self, event: E_contra) -> Awaitable[R_co]: ...


SuspendRequestHandler = SuspendHandler[RequestContext, None]
ApiRequestHandler = SuspendHandler[RequestContext, Optional[ApiResponse]]


def wrap_handler(request_handler: SuspendRequestHandler) -> RequestCallback:
    """Wrap an async request handler into a synchronous route callback.

    The callback schedules the handler in the request's task group and
    returns at once. Anything the handler raises is routed through
    ``ctx.fail`` instead of escaping.
    """

    def callback(ctx: RequestContext) -> None:
        try:
            ctx.spawn(call_handler, request_handler, ctx)
        except Exception as exc:
            ctx.fail(failure=exc)

    return callback


def wrap_api_handler(request_handler: ApiRequestHandler) -> RequestCallback:
    """Wrap an API handler so that a returned envelope is written as the response."""

    async def handle(ctx: RequestContext) -> None:
        response = await call_handler(request_handler, ctx)
        if response is not None:
            await send_api_response(ctx, response)

    return wrap_handler(handle)


async def send_api_response(ctx: RequestContext, response: ApiResponse) -> None:
    """Write an envelope as the JSON response of the request."""
    await (
        ctx.response
        .put_header("content-type", JSON_CONTENT_TYPE)
        .set_status_code(response.http_status)
        .end(response.to_json())
    )


async def call_handler(request_handler: SuspendHandler[RequestContext, Any], ctx: RequestContext) -> Any:
    """Invoke a handler, awaiting its result when it returns an awaitable."""
    result = request_handler(ctx)
    if inspect.isawaitable(result):
        return await result
    return result
