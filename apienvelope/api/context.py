"""Per-request context: request access, response writing and failure signalling.

Every request runs inside its own ``anyio`` task group. Work spawned for a
request is joined before the route endpoint returns, and the whole scope is
cancelled when the client disconnects.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
import logging
import math
from typing import Any

import anyio
from anyio import CancelScope
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectSendStream
from fastapi import status
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Message
from starlette.types import Receive
from starlette.types import Scope
from starlette.types import Send

from apienvelope.core.errors import RequestFailed
from apienvelope.core.errors import ResponseAlreadyWrittenError
from apienvelope.core.errors import failure_cause
from apienvelope.core.errors import failure_status_code

logger = logging.getLogger(__name__)

RequestCallback = Callable[["RequestContext"], None]


class ResponseWriter:
    """Collect status and headers, then write the response exactly once.

    With an ASGI ``send`` channel the response goes out on :meth:`end`;
    without one it is kept so an exception handler can return it.
    """

    def __init__(self, scope: Scope, receive: Receive, send: Send | None = None) -> None:
        self._scope = scope
        self._receive = receive
        self._send = send
        self._status_code = status.HTTP_200_OK
        self._headers: dict[str, str] = {}
        self._response: Response | None = None

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    @property
    def ended(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> Response | None:
        return self._response

    def set_status_code(self, status_code: int) -> ResponseWriter:
        self._ensure_open()
        self._status_code = status_code
        return self

    def put_header(self, name: str, value: str) -> ResponseWriter:
        self._ensure_open()
        self._headers[name.lower()] = value
        return self

    async def end(self, body: str | bytes = b"") -> None:
        """Write the response body and finish the response."""
        self._ensure_open()
        self._response = Response(content=body, status_code=self._status_code, headers=self._headers)
        if self._send is not None:
            await self._response(self._scope, self._receive, self._send)

    def _ensure_open(self) -> None:
        if self._response is not None:
            raise ResponseAlreadyWrittenError(f"Response for {self._scope.get('path', '?')} was already written")


class RequestContext:
    """State of one request travelling through a route's handler chain."""

    def __init__(
        self,
        request: Request,
        response: ResponseWriter,
        handlers: Sequence[RequestCallback] = (),
        *,
        status_code: int | None = None,
        failure: BaseException | None = None,
        failed: bool = False,
    ) -> None:
        self.request = request
        self.response = response
        self._handlers = tuple(handlers)
        self._index = 0
        self._task_group: TaskGroup | None = None
        self._failed = failed
        self._status_code = status_code
        self._failure = failure
        self._disconnected = False
        self._received: list[Message] = []

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def failure(self) -> BaseException | None:
        """Original cause of the failure, if one was recorded."""
        return self._failure

    @property
    def status_code(self) -> int | None:
        """Status code of the recorded failure, if any."""
        return self._status_code

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    def spawn(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Start ``func(*args)`` in this request's task group.

        An exception raised by the spawned work fails the request.
        """
        if self._task_group is None:
            raise RuntimeError("Request context is not running; work can only be spawned while the request is open")
        self._task_group.start_soon(self._run_guarded, func, *args)

    async def _run_guarded(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await func(*args)
        except Exception as exc:
            logger.debug("Work for %s raised %r; failing the request", self.request.url.path, exc)
            self.fail(failure=exc)

    def next(self) -> None:
        """Pass the request to the next handler of the route chain."""
        if self._index >= len(self._handlers):
            self.fail(status.HTTP_404_NOT_FOUND)
            return

        callback = self._handlers[self._index]
        self._index += 1
        try:
            callback(self)
        except Exception as exc:
            self.fail(failure=exc)

    def fail(self, status_code: int | None = None, failure: BaseException | None = None) -> None:
        """Record a failure to be routed to the error handler for its status code.

        Only the first failure of a request is routed; later ones are logged.
        Pending work for the request is cancelled.
        """
        if status_code is None:
            status_code = failure_status_code(failure)

        path = self.request.url.path
        if self._failed:
            logger.error(
                "Request to %s failed with status %s while already failed with status %s",
                path,
                status_code,
                self._status_code,
                exc_info=failure,
            )
        elif self.response.ended:
            logger.error("Request to %s failed with status %s after its response was sent", path, status_code, exc_info=failure)
        else:
            self._failed = True
            self._status_code = status_code
            self._failure = failure

        if self._task_group is not None:
            self._task_group.cancel_scope.cancel()


async def run_request(
    handlers: Sequence[RequestCallback],
    scope: Scope,
    receive: Receive,
    send: Send,
) -> RequestContext:
    """Drive a route's handler chain for one request until it settles."""
    body_sender, body_receiver = anyio.create_memory_object_stream(math.inf)
    ctx = RequestContext(
        Request(scope, body_receiver.receive),
        ResponseWriter(scope, body_receiver.receive, send),
        handlers,
    )
    try:
        async with anyio.create_task_group() as connection:
            connection.start_soon(_pump_messages, receive, body_sender, ctx, connection.cancel_scope)
            try:
                async with anyio.create_task_group() as work:
                    ctx._task_group = work
                    ctx.next()
            finally:
                ctx._task_group = None
            connection.cancel_scope.cancel()
    finally:
        body_sender.close()
        body_receiver.close()
    return ctx


async def run_failure(handlers: Sequence[RequestCallback], request: Request, exc: BaseException) -> RequestContext:
    """Drive an error handler chain for a request that already failed."""
    if isinstance(exc, RequestFailed) and exc.request is not None:
        request = exc.request
    ctx = RequestContext(
        request,
        ResponseWriter(request.scope, request.receive),
        handlers,
        status_code=failure_status_code(exc),
        failure=failure_cause(exc),
        failed=True,
    )
    try:
        async with anyio.create_task_group() as work:
            ctx._task_group = work
            ctx.next()
    finally:
        ctx._task_group = None
    return ctx


async def _pump_messages(
    receive: Receive,
    sink: MemoryObjectSendStream[Any],
    ctx: RequestContext,
    cancel_scope: CancelScope,
) -> None:
    # Sole reader of the ASGI receive channel; body messages are forwarded to the request.
    # A disconnect after the response was sent is the normal end of the exchange.
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            if not ctx.response.ended:
                ctx._disconnected = True
                cancel_scope.cancel()
            return
        ctx._received.append(message)
        await sink.send(message)


def replay_request(ctx: RequestContext, receive: Receive) -> Request:
    """Return a request that reads the body again from its first message.

    Messages already taken from ``receive`` for ``ctx`` are replayed before
    reading from ``receive`` itself.
    """
    pending = list(ctx._received)

    async def replay() -> Message:
        if pending:
            return pending.pop(0)
        return await receive()

    return Request(ctx.request.scope, replay)
