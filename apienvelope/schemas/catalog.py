"""Ready-made error envelopes for the standard HTTP failure classes."""

from __future__ import annotations

from collections.abc import Callable
import logging

from fastapi import status

from apienvelope.schemas.envelope import ApiErrorResponse
from apienvelope.schemas.envelope import api_error

logger = logging.getLogger(__name__)

FailureHook = Callable[[BaseException | None], object]


def api_not_found_error() -> ApiErrorResponse:
    return api_error(name="not_found", message="Not found", status_code=status.HTTP_404_NOT_FOUND)


def api_unauthorized_error() -> ApiErrorResponse:
    return api_error(name="unauthorized", message="Unauthorized", status_code=status.HTTP_403_FORBIDDEN)


def api_method_not_allowed_error() -> ApiErrorResponse:
    return api_error(
        name="method_not_allowed",
        message="Method not allowed",
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
    )


def api_bad_request_error() -> ApiErrorResponse:
    return api_error(name="bad_request", message="Bad request", status_code=status.HTTP_400_BAD_REQUEST)


def api_internal_error(
    failure: BaseException | None = None,
    on_failure: FailureHook | None = None,
) -> ApiErrorResponse:
    """Return the internal error envelope, reporting ``failure`` to ``on_failure`` first.

    Errors raised by the hook are logged and never replace the envelope.
    """
    if on_failure is not None:
        try:
            on_failure(failure)
        except Exception:
            logger.exception("Internal error hook raised while reporting %r", failure)

    return api_error(
        name="internal_error",
        message="Internal error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
