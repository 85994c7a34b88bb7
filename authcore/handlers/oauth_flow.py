"""Login flow endpoints: authorize, callback, refresh, revoke and ID token validation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel
from starlette import status

from authcore.handlers.dependencies import get_oauth_service
from authcore.handlers.errors import status_for
from authcore.models.auth import AuthResult
from authcore.models.errors import ErrorCode
from authcore.oauth.service import OAuthService
from authcore.oauth.tokens import TokenTypeHint
from authcore.utils.logging import get_logger

router = APIRouter(prefix="/oauth2", tags=["oauth2"])
logger = get_logger(__name__)

Service = Annotated[OAuthService, Depends(get_oauth_service)]

# Query parameters of /authorize that are not forwarded to the provider.
LOCAL_QUERY_PARAMS = {"redirect"}


class RefreshRequest(BaseModel):
    refresh_token: str


class RevokeRequest(BaseModel):
    token: str
    token_type_hint: TokenTypeHint = "access_token"


class ValidateRequest(BaseModel):
    id_token: str
    nonce: str | None = None


@router.get("/{provider_id}/authorize")
async def authorize(
    request: Request,
    service: Service,
    provider_id: str,
    redirect: Annotated[bool, Query()] = True,
) -> Response:
    """
    Start a login. Redirects to the provider by default; with
    ``redirect=false`` the URL and state are returned as JSON instead.
    Other query parameters (``prompt``, ``login_hint``...) are forwarded.
    """
    extra = {k: v for k, v in request.query_params.items() if k not in LOCAL_QUERY_PARAMS}
    authorization = await service.generate_authorization_url(provider_id, extra_params=extra)
    if redirect:
        return RedirectResponse(authorization.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    return JSONResponse(authorization.model_dump(exclude={"code_verifier"}))


@router.get("/{provider_id}/callback")
async def callback(
    service: Service,
    provider_id: str,
    state: str,
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
) -> JSONResponse:
    """Complete a login with the ``code`` and ``state`` the provider redirected back with."""
    if error or not code:
        # The provider reported a failure; the pending request is spent either way.
        service.requests.discard(state)
        message = error_description or error or "Authorization code missing"
        logger.info("oauth_callback_error", provider_id=provider_id, error=error)
        result = AuthResult(
            success=False, error=message, error_code=ErrorCode.ACCESS_DENIED, state=state
        )
    else:
        result = await service.exchange_code_for_tokens(provider_id, code, state)

    return JSONResponse(
        content=result.model_dump(mode="json", exclude_none=True),
        status_code=status.HTTP_200_OK if result.success else status_for(result.error_code),
    )


@router.post("/{provider_id}/refresh")
async def refresh(service: Service, provider_id: str, body: RefreshRequest) -> JSONResponse:
    result = await service.refresh_access_token(provider_id, body.refresh_token)
    return JSONResponse(
        content=result.model_dump(mode="json", exclude_none=True),
        status_code=status.HTTP_200_OK if result.success else status_for(result.error_code),
    )


@router.post("/{provider_id}/revoke")
async def revoke(service: Service, provider_id: str, body: RevokeRequest) -> JSONResponse:
    result = await service.revoke_token(provider_id, body.token, body.token_type_hint)
    return JSONResponse(
        content=result.model_dump(mode="json", exclude_none=True),
        status_code=status.HTTP_200_OK if result.success else status_for(result.error_code),
    )


@router.post("/{provider_id}/validate")
async def validate(service: Service, provider_id: str, body: ValidateRequest) -> JSONResponse:
    result = await service.validate_id_token(provider_id, body.id_token, body.nonce)
    return JSONResponse(
        content=result.model_dump(mode="json", exclude_none=True),
        status_code=status.HTTP_200_OK if result.valid else status.HTTP_401_UNAUTHORIZED,
    )
