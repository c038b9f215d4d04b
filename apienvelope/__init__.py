"""JSON response envelopes and async request adapters for FastAPI/Starlette apps."""

from apienvelope.api.context import RequestContext
from apienvelope.api.context import ResponseWriter
from apienvelope.api.handlers import send_api_response
from apienvelope.api.handlers import wrap_api_handler
from apienvelope.api.handlers import wrap_handler
from apienvelope.api.routing import ApiRoute
from apienvelope.api.routing import api_error_handler
from apienvelope.api.routing import default_api_info_handler
from apienvelope.api.routing import default_api_internal_error_handler
from apienvelope.api.routing import default_api_not_found_handler
from apienvelope.api.routing import default_api_unauthorized_handler
from apienvelope.api.routing import default_bad_request_handler
from apienvelope.api.routing import default_method_not_allowed_handler
from apienvelope.api.routing import mount_api_router
from apienvelope.api.routing import route
from apienvelope.api.routing import suspend_error_handler
from apienvelope.core.errors import RequestFailed
from apienvelope.core.errors import ResponseAlreadyWrittenError
from apienvelope.schemas.catalog import api_bad_request_error
from apienvelope.schemas.catalog import api_internal_error
from apienvelope.schemas.catalog import api_method_not_allowed_error
from apienvelope.schemas.catalog import api_not_found_error
from apienvelope.schemas.catalog import api_unauthorized_error
from apienvelope.schemas.envelope import ApiError
from apienvelope.schemas.envelope import ApiErrorResponse
from apienvelope.schemas.envelope import ApiResponse
from apienvelope.schemas.envelope import ApiSuccessResponse
from apienvelope.schemas.envelope import api_error
from apienvelope.schemas.envelope import api_errors
from apienvelope.schemas.envelope import api_info_success
from apienvelope.schemas.envelope import api_success
from apienvelope.schemas.envelope import to_wire

__all__ = [
    "ApiError",
    "ApiErrorResponse",
    "ApiResponse",
    "ApiRoute",
    "ApiSuccessResponse",
    "RequestContext",
    "RequestFailed",
    "ResponseAlreadyWrittenError",
    "ResponseWriter",
    "api_bad_request_error",
    "api_error",
    "api_error_handler",
    "api_errors",
    "api_info_success",
    "api_internal_error",
    "api_method_not_allowed_error",
    "api_not_found_error",
    "api_unauthorized_error",
    "default_api_info_handler",
    "default_api_internal_error_handler",
    "default_api_not_found_handler",
    "default_api_unauthorized_handler",
    "default_bad_request_handler",
    "default_method_not_allowed_handler",
    "mount_api_router",
    "route",
    "send_api_response",
    "suspend_error_handler",
    "to_wire",
    "wrap_api_handler",
    "wrap_handler",
]
