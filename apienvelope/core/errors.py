"""Failure signals raised into the framework's status-code error routing."""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus

from fastapi import status
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request


class RequestFailed(StarletteHTTPException):
    """Signal that a request failed and must be routed to the handler for ``status_code``.

    ``request`` is the request error handlers should see in place of the one
    rebuilt by the framework; its body can still be read. Headers of an HTTP
    exception given as ``failure`` are kept unless ``headers`` is passed.
    """

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        failure: BaseException | None = None,
        *,
        headers: Mapping[str, str] | None = None,
        request: Request | None = None,
    ) -> None:
        if headers is None and isinstance(failure, StarletteHTTPException):
            headers = failure.headers
        super().__init__(status_code=status_code, detail=status_phrase(status_code), headers=headers)
        self.failure = failure
        self.request = request
        self.__cause__ = failure


class ResponseAlreadyWrittenError(RuntimeError):
    """Raised when a second response is written for the same request."""


def failure_status_code(failure: BaseException | None) -> int:
    """Return the status code a failure should be routed to."""
    if isinstance(failure, StarletteHTTPException):
        return failure.status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def failure_cause(exc: BaseException | None) -> BaseException | None:
    """Return the original cause carried by a routed exception, however deeply wrapped."""
    while isinstance(exc, RequestFailed):
        exc = exc.failure
    return exc


def status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"
