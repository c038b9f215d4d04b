"""Unit tests for the per-request context and response writer."""

from __future__ import annotations

from typing import Any

import anyio
import pytest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from apienvelope.api.context import RequestContext
from apienvelope.api.context import ResponseWriter
from apienvelope.api.context import replay_request
from apienvelope.api.context import run_failure
from apienvelope.api.context import run_request
from apienvelope.api.handlers import send_api_response
from apienvelope.api.handlers import wrap_handler
from apienvelope.api.routing import ApiRoute
from apienvelope.core.errors import RequestFailed
from apienvelope.core.errors import ResponseAlreadyWrittenError
from apienvelope.schemas.envelope import api_error


def _scope(path: str = "/api/v1/things") -> dict[str, Any]:
    return {
        "type": "http",
        "method": "GET",
        "path": path,
        "root_path": "",
        "scheme": "http",
        "query_string": b"",
        "headers": [],
        "server": ("testserver", 80),
    }


async def _receive() -> dict[str, Any]:
    return {"type": "http.disconnect"}


def _context(handlers=()) -> RequestContext:
    scope = _scope()
    return RequestContext(Request(scope, _receive), ResponseWriter(scope, _receive), handlers)


class _RecordingSend:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)


@pytest.mark.asyncio
async def test_writer_sends_status_headers_and_body() -> None:
    send = _RecordingSend()
    writer = ResponseWriter(_scope(), _receive, send)

    await writer.put_header("X-Trace", "abc").set_status_code(201).end("created")

    start, body = send.messages
    assert start["type"] == "http.response.start"
    assert start["status"] == 201
    assert (b"x-trace", b"abc") in start["headers"]
    assert body["body"] == b"created"
    assert writer.ended


@pytest.mark.asyncio
async def test_writer_without_send_keeps_response() -> None:
    writer = ResponseWriter(_scope(), _receive)

    await writer.set_status_code(418).end(b"teapot")

    assert writer.response is not None
    assert writer.response.status_code == 418
    assert writer.response.body == b"teapot"


@pytest.mark.asyncio
async def test_writer_rejects_second_write() -> None:
    writer = ResponseWriter(_scope(), _receive)
    await writer.end()

    with pytest.raises(ResponseAlreadyWrittenError):
        await writer.end()
    with pytest.raises(ResponseAlreadyWrittenError):
        writer.set_status_code(500)


@pytest.mark.asyncio
async def test_send_api_response_uses_envelope_status_and_json_content_type() -> None:
    ctx = _context()

    await send_api_response(ctx, api_error("conflict", "Already exists", status_code=409))

    response = ctx.response.response
    assert response is not None
    assert response.status_code == 409
    assert response.headers["content-type"] == "application/json; charset=UTF-8"
    assert response.body == b'{"success":false,"statusCode":409,"errors":[{"name":"conflict","message":"Already exists","data":null}]}'


def test_first_failure_wins() -> None:
    ctx = _context()
    first = RuntimeError("first")

    ctx.fail(failure=first)
    ctx.fail(403)

    assert ctx.failed
    assert ctx.status_code == 500
    assert ctx.failure is first


def test_fail_uses_http_exception_status() -> None:
    ctx = _context()

    ctx.fail(failure=StarletteHTTPException(status_code=409))

    assert ctx.status_code == 409


@pytest.mark.asyncio
async def test_fail_after_response_is_ignored() -> None:
    ctx = _context()
    await ctx.response.end("done")

    ctx.fail(500, RuntimeError("late"))

    assert not ctx.failed


def test_next_past_end_of_chain_fails_with_not_found() -> None:
    ctx = _context()

    ctx.next()

    assert ctx.failed
    assert ctx.status_code == 404


def test_next_routes_synchronous_callback_errors_to_failure() -> None:
    def explode(_: RequestContext) -> None:
        raise ValueError("bad callback")

    ctx = _context([explode])

    ctx.next()

    assert ctx.status_code == 500
    assert isinstance(ctx.failure, ValueError)


def test_wrapped_handler_outside_running_request_fails_instead_of_raising() -> None:
    async def handler(_: RequestContext) -> None:
        return None

    ctx = _context([wrap_handler(handler)])

    ctx.next()

    assert ctx.failed
    assert isinstance(ctx.failure, RuntimeError)


@pytest.mark.asyncio
async def test_run_failure_exposes_original_cause() -> None:
    seen: list[BaseException | None] = []
    cause = KeyError("missing")

    async def handler(ctx: RequestContext) -> None:
        seen.append(ctx.failure)
        await ctx.response.set_status_code(ctx.status_code or 0).end("handled")

    scope = _scope()
    ctx = await run_failure([wrap_handler(handler)], Request(scope, _receive), RequestFailed(500, cause))

    assert seen == [cause]
    assert ctx.response.response is not None
    assert ctx.response.response.status_code == 500


@pytest.mark.asyncio
async def test_client_disconnect_cancels_handler_and_writes_nothing() -> None:
    started = anyio.Event()
    cancelled: list[bool] = []
    send = _RecordingSend()

    async def slow(ctx: RequestContext) -> None:
        started.set()
        try:
            await anyio.sleep(5)
        except anyio.get_cancelled_exc_class():
            cancelled.append(True)
            raise
        await ctx.response.end("too late")

    async def receive() -> dict[str, Any]:
        await started.wait()
        return {"type": "http.disconnect"}

    route = ApiRoute("/api/v1/things").suspend_handler(slow)
    with anyio.fail_after(2):
        await route(_scope(), receive, send)

    assert cancelled == [True]
    assert send.messages == []


@pytest.mark.asyncio
async def test_disconnect_after_response_lets_spawned_work_finish() -> None:
    finished: list[str] = []
    written = anyio.Event()
    send = _RecordingSend()

    async def audit() -> None:
        await anyio.sleep(0.01)
        finished.append("audit")

    async def handler(ctx: RequestContext) -> None:
        ctx.spawn(audit)
        await ctx.response.end("done")
        written.set()

    async def receive() -> dict[str, Any]:
        await written.wait()
        return {"type": "http.disconnect"}

    with anyio.fail_after(2):
        ctx = await run_request([wrap_handler(handler)], _scope(), receive, send)

    assert not ctx.disconnected
    assert finished == ["audit"]
    assert [message["type"] for message in send.messages] == ["http.response.start", "http.response.body"]


@pytest.mark.asyncio
async def test_replayed_request_reads_body_already_taken_by_the_request() -> None:
    messages = [
        {"type": "http.request", "body": b"first ", "more_body": True},
        {"type": "http.request", "body": b"second", "more_body": False},
    ]
    read: list[bytes] = []

    async def receive() -> dict[str, Any]:
        if messages:
            return messages.pop(0)
        await anyio.sleep_forever()

    async def handler(ctx: RequestContext) -> None:
        read.append(await ctx.request.body())
        ctx.fail(500)

    scope = {**_scope(), "method": "POST"}
    with anyio.fail_after(2):
        ctx = await run_request([wrap_handler(handler)], scope, receive, _RecordingSend())
        replayed = await replay_request(ctx, receive).body()

    assert read == [b"first second"]
    assert replayed == b"first second"
