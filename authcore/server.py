"""
ASGI application exposing the authentication core over HTTP.

The lifespan builds one OAuthService, registers the built-in providers and
stores the service on ``app.state``; every route reaches it through a
dependency, never through a global.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from authcore import __version__
from authcore.config import Config, get_config
from authcore.handlers.dependencies import get_oauth_service
from authcore.handlers.errors import oauth_core_error_handler
from authcore.handlers.health import health_check
from authcore.handlers.oauth_flow import router as oauth_flow_router
from authcore.handlers.providers import router as providers_router
from authcore.models.errors import OAuthCoreError
from authcore.oauth.service import OAuthService
from authcore.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(config: Config | None = None, service: OAuthService | None = None) -> FastAPI:
    """
    Builds the application.

    Args:
        config: Settings to use; defaults to the environment.
        service: A ready service to serve. When given, the caller owns it and
            the built-in providers are not loaded.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting authentication server", version=__version__)
        logger.info(
            "Configuration loaded",
            environment=config.environment,
            log_level=config.log_level,
            http_timeout_seconds=config.http_timeout_seconds,
        )
        if service is not None:
            app.state.oauth_service = service
            yield
            return

        async with OAuthService(config) as owned:
            await owned.load_builtin_providers()
            app.state.oauth_service = owned
            logger.info("OAuth service ready", provider_count=len(owned.registry))
            yield
        logger.info("Shutting down authentication server")

    app = FastAPI(
        title="OAuth2 / OIDC Authentication Core",
        description="Provider configuration and authorization-code login with PKCE.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_exception_handler(OAuthCoreError, oauth_core_error_handler)
    app.include_router(providers_router)
    app.include_router(oauth_flow_router)

    origins = config.cors_origins
    if origins:
        logger.info("CORS middleware enabled", allowed_origins=origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Health check endpoint."""
        return await health_check(get_oauth_service(request))

    return app


app = create_app()
