"""Maps core errors to OAuth-style HTTP error responses."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status

from authcore.models.errors import ErrorCode, OAuthCoreError
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.CONFIGURATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PROVIDER_DISABLED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ACCESS_DENIED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PROTOCOL_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def status_for(code: ErrorCode | None) -> int:
    """HTTP status for an error code; ID token failures are 401."""
    if code is None:
        return status.HTTP_400_BAD_REQUEST
    return STATUS_BY_CODE.get(code, status.HTTP_401_UNAUTHORIZED)


def build_oauth_error_response(error: OAuthCoreError) -> JSONResponse:
    """Builds an OAuth 2.0 style error JSONResponse."""
    content = error.to_detail().model_dump(mode="json", exclude_none=True)
    return JSONResponse(content=content, status_code=status_for(error.code))


async def oauth_core_error_handler(request: Request, exc: OAuthCoreError) -> JSONResponse:
    logger.warning(
        "oauth_request_failed",
        path=request.url.path,
        error_code=exc.code.value,
        error=exc.message,
    )
    return build_oauth_error_response(exc)
