"""Health check endpoint handler."""

from datetime import UTC, datetime

from fastapi.responses import JSONResponse

from authcore import __version__
from authcore.models.health import HealthCheckResponse
from authcore.oauth.service import OAuthService


async def health_check(service: OAuthService) -> JSONResponse:
    """
    Handles the health check request.
    Returns a JSON response with the server's health status.
    """
    response_model = HealthCheckResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC),
        providers_configured=len(service.registry),
        pending_authorizations=len(service.requests),
    )

    return JSONResponse(content=response_model.model_dump(mode="json"))
