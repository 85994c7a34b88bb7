"""Provider configuration endpoints.

Administrators manage providers through these routes. Responses never
carry the client secret.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import JSONResponse
from starlette import status

from authcore.handlers.dependencies import get_oauth_service
from authcore.models.auth import ConnectionTestResult
from authcore.oauth.service import OAuthService
from authcore.registry.provider_registry import AnyProviderConfig

router = APIRouter(prefix="/oauth2/providers", tags=["providers"])

Service = Annotated[OAuthService, Depends(get_oauth_service)]


def _public(config: AnyProviderConfig) -> dict[str, Any]:
    return config.model_dump(mode="json", exclude={"client_secret"})


@router.get("")
async def list_providers(
    service: Service, organization_id: Annotated[str, Query()] = "default"
) -> list[dict[str, Any]]:
    """List the providers of an organization."""
    return [_public(config) for config in service.list_providers(organization_id)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_provider(
    service: Service, payload: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    """
    Configure a provider. The body is tagged with ``kind`` (``oauth2`` or
    ``oidc``); incomplete configurations are rejected with 400.
    """
    return _public(await service.configure_provider(payload))


@router.get("/{provider_id}")
async def get_provider(service: Service, provider_id: str) -> dict[str, Any]:
    return _public(service.get_provider(provider_id))


@router.put("/{provider_id}")
async def update_provider(
    service: Service, provider_id: str, patch: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    return _public(await service.update_provider(provider_id, patch))


@router.delete("/{provider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_provider(service: Service, provider_id: str) -> Response:
    await service.delete_provider(provider_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{provider_id}/test")
async def test_provider_connection(service: Service, provider_id: str) -> JSONResponse:
    """Check that the provider's endpoints answer."""
    result: ConnectionTestResult = await service.test_connection(provider_id)
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY,
    )
