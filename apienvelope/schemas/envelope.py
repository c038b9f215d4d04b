"""API response envelope schemas shared across request handlers."""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any
from typing import Literal
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

JSON_CONTENT_TYPE = "application/json; charset=UTF-8"


class ApiError(BaseModel):
    """Single machine-readable error entry of an error envelope."""

    model_config = ConfigDict(frozen=True)

    name: str
    message: str
    data: Any = None


class ApiSuccessResponse(BaseModel):
    """Successful API response envelope."""

    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    data: Any = None

    @property
    def http_status(self) -> int:
        return 200

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible wire representation."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        return self.model_dump_json()


class ApiErrorResponse(BaseModel):
    """Error API response envelope carrying one or more errors.

    An empty error list is rejected at construction time with a
    ``pydantic.ValidationError``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: Literal[False] = False
    status_code: int = Field(default=500, ge=100, le=599, alias="statusCode")
    errors: tuple[ApiError, ...] = Field(min_length=1)

    @property
    def http_status(self) -> int:
        return self.status_code

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible wire representation."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


ApiResponse = Union[ApiSuccessResponse, ApiErrorResponse]


def api_success(data: Any = None) -> ApiSuccessResponse:
    """Build a successful envelope, optionally wrapping ``data``."""
    return ApiSuccessResponse(data=data)


def api_error(
    name: str,
    message: str,
    data: Any = None,
    status_code: int = 500,
) -> ApiErrorResponse:
    """Build an error envelope holding a single error.

    To return several errors at once, use :func:`api_errors`.
    """
    return ApiErrorResponse(errors=(ApiError(name=name, message=message, data=data),), status_code=status_code)


def api_errors(errors: Sequence[ApiError], status_code: int = 500) -> ApiErrorResponse:
    """Build an error envelope holding several errors, in order."""
    return ApiErrorResponse(errors=tuple(errors), status_code=status_code)


def api_info_success(current_version: str, supported_versions: Sequence[str]) -> ApiSuccessResponse:
    """Build the API info envelope listing the current and supported versions."""
    return api_success(
        {
            "currentVersion": current_version,
            "supportedVersions": list(supported_versions),
        }
    )


def to_wire(response: ApiResponse) -> dict[str, Any]:
    """Encode an envelope to its wire dict."""
    return response.to_wire()


def from_wire(payload: Mapping[str, Any]) -> ApiResponse:
    """Decode a wire dict back into the matching envelope variant."""
    if payload.get("success") is True:
        return ApiSuccessResponse.model_validate(payload)
    return ApiErrorResponse.model_validate(payload)
