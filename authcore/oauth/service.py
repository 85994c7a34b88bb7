"""OAuth2/OIDC service: the single entry point used by the rest of the application.

One ``OAuthService`` owns the provider registry, the pending authorization
requests, the discovery and JWKS caches and the HTTP client they share.
Construct it once, pass it to whoever needs it, and close it on shutdown.
"""

import inspect
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import httpx

from authcore.config import Config
from authcore.models.auth import (
    AuthEvent,
    AuthorizationUrl,
    AuthResult,
    ConnectionTestResult,
    IdTokenValidation,
    RefreshResult,
    RevokeResult,
)
from authcore.models.errors import NetworkError, OAuthCoreError, ProtocolError
from authcore.models.provider import OAuth2ProviderConfig, OIDCProviderConfig, ProviderFamily
from authcore.oauth.authorization import AuthorizationRequestBuilder, AuthorizationRequestStore
from authcore.oauth.discovery import DiscoveryResolver
from authcore.oauth.http import create_http_client, send
from authcore.oauth.id_token import IdTokenValidator
from authcore.oauth.jwks import JWKSCache
from authcore.oauth.tokens import TokenExchangeClient, TokenTypeHint
from authcore.registry.provider_registry import AnyProviderConfig, ProviderRegistry
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

AuthListener = Callable[[AuthEvent], Awaitable[None] | None]


def builtin_providers(config: Config) -> list[OIDCProviderConfig]:
    """Google and Microsoft providers for which credentials are configured."""
    providers = []
    if config.google_client_id and config.google_client_secret:
        providers.append(
            OIDCProviderConfig(
                id="google-oauth2",
                name="Google OAuth2",
                family=ProviderFamily.GOOGLE,
                client_id=config.google_client_id,
                client_secret=config.google_client_secret,
                authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
                token_url="https://oauth2.googleapis.com/token",
                user_info_url="https://www.googleapis.com/oauth2/v2/userinfo",
                jwks_url="https://www.googleapis.com/oauth2/v3/certs",
                scopes=["openid", "email", "profile"],
                redirect_uri=config.google_redirect_uri,
                issuer="https://accounts.google.com",
                discovery_url="https://accounts.google.com/.well-known/openid-configuration",
                use_discovery=True,
                clock_tolerance=config.default_clock_tolerance_seconds,
            )
        )
    if config.azure_client_id and config.azure_client_secret:
        tenant = config.azure_tenant_id
        login_base = f"https://login.microsoftonline.com/{tenant}"
        providers.append(
            OIDCProviderConfig(
                id="microsoft-oauth2",
                name="Microsoft Azure AD",
                family=ProviderFamily.MICROSOFT,
                client_id=config.azure_client_id,
                client_secret=config.azure_client_secret,
                authorization_url=f"{login_base}/oauth2/v2.0/authorize",
                token_url=f"{login_base}/oauth2/v2.0/token",
                user_info_url="https://graph.microsoft.com/v1.0/me",
                jwks_url=f"{login_base}/discovery/v2.0/keys",
                scopes=["openid", "email", "profile", "User.Read"],
                redirect_uri=config.azure_redirect_uri,
                issuer=f"{login_base}/v2.0",
                use_discovery=True,
                clock_tolerance=config.default_clock_tolerance_seconds,
            )
        )
    return providers


class OAuthService:
    def __init__(
        self,
        config: Config,
        http_client: httpx.AsyncClient | None = None,
        listeners: Sequence[AuthListener] = (),
        clock: Callable[[], float] = time.time,
        monotonic_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._owns_http_client = http_client is None
        self._http = http_client or create_http_client(
            config.http_timeout_seconds, config.http_user_agent
        )
        self.listeners: list[AuthListener] = list(listeners)

        self.registry = ProviderRegistry()
        self.requests = AuthorizationRequestStore(
            ttl_seconds=config.authorization_request_ttl_seconds,
            max_pending=config.authorization_request_max_pending,
            clock=clock,
        )
        self.discovery = DiscoveryResolver(
            self.registry, self._http, ttl_seconds=config.discovery_ttl_seconds, clock=clock
        )
        self.jwks = JWKSCache(
            self.registry,
            self._http,
            max_entries=config.jwks_cache_max_entries,
            ttl_seconds=config.jwks_cache_ttl_seconds,
            requests_per_minute=config.jwks_requests_per_minute,
            clock=monotonic_clock,
        )
        self.validator = IdTokenValidator(self.registry, self.jwks, clock=clock)
        self.builder = AuthorizationRequestBuilder(self.registry, self.requests, clock=clock)
        self.tokens = TokenExchangeClient(
            self.registry, self.requests, self.validator, self.discovery, self._http, clock=clock
        )

    async def __aenter__(self) -> "OAuthService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Releases every cache and, if owned, the HTTP client."""
        self.discovery.clear()
        self.jwks.clear()
        self.requests.clear()
        self.registry.clear()
        if self._owns_http_client:
            await self._http.aclose()
        logger.info("oauth_service_closed")

    # Provider configuration

    async def configure_provider(
        self, config: AnyProviderConfig | Mapping[str, Any]
    ) -> AnyProviderConfig:
        """
        Registers a provider. For OIDC providers with discovery enabled the
        discovery document is loaded right away; a failure there is logged
        and the manually configured endpoints stay in effect.

        Raises:
            ConfigurationError: If the configuration is incomplete or invalid.
        """
        stored = self.registry.configure(config)
        self._evict_caches(stored.id)
        await self.discovery.resolve(stored.id, force=True)
        return self.registry.get(stored.id)

    def list_providers(self, organization_id: str) -> list[AnyProviderConfig]:
        return self.registry.list(organization_id)

    def get_provider(self, provider_id: str) -> AnyProviderConfig:
        return self.registry.get(provider_id)

    async def update_provider(
        self, provider_id: str, patch: Mapping[str, Any]
    ) -> AnyProviderConfig:
        self.registry.update(provider_id, patch)
        self._evict_caches(provider_id)
        await self.discovery.resolve(provider_id, force=True)
        return self.registry.get(provider_id)

    async def delete_provider(self, provider_id: str) -> None:
        self.registry.delete(provider_id)
        self._evict_caches(provider_id)
        dropped = self.requests.discard_provider(provider_id)
        logger.info(
            "oauth_provider_caches_evicted", provider_id=provider_id, pending_dropped=dropped
        )

    def _evict_caches(self, provider_id: str) -> None:
        self.discovery.evict(provider_id)
        self.jwks.evict(provider_id)

    async def load_builtin_providers(self) -> list[str]:
        """Registers the built-in providers whose credentials are configured."""
        configured = []
        for provider in builtin_providers(self.config):
            try:
                await self.configure_provider(provider)
            except OAuthCoreError as e:
                logger.error(
                    "oauth_builtin_provider_failed", provider_id=provider.id, error=e.message
                )
                continue
            configured.append(provider.id)
        logger.info("oauth_builtin_providers_loaded", providers=configured)
        return configured

    async def test_connection(self, provider_id: str) -> ConnectionTestResult:
        """
        Checks that the provider answers: OIDC providers by fetching their
        discovery document, plain OAuth2 providers by probing the
        authorization endpoint.

        Raises:
            NotFoundError: If the provider is not configured.
        """
        config = self.registry.resolve(provider_id)
        match config:
            case OIDCProviderConfig() if config.effective_discovery_url:
                try:
                    endpoints = await self.discovery.fetch(config.effective_discovery_url)
                except OAuthCoreError as e:
                    return ConnectionTestResult(success=False, error=e.message)
                return ConnectionTestResult(success=True, endpoints=endpoints)
            case OIDCProviderConfig() | OAuth2ProviderConfig():
                try:
                    await send(self._http, "HEAD", config.authorization_url)
                except ProtocolError:
                    # Any HTTP status proves the endpoint is reachable; many reject HEAD.
                    logger.debug("oauth_connection_test_http_error", provider_id=provider_id)
                except NetworkError as e:
                    return ConnectionTestResult(success=False, error=e.message)
                return ConnectionTestResult(success=True)

    # Login flow

    async def _refresh_endpoints(self, provider_id: str) -> None:
        await self.discovery.resolve(provider_id)

    async def generate_authorization_url(
        self,
        provider_id: str,
        state: str | None = None,
        nonce: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> AuthorizationUrl:
        await self._refresh_endpoints(provider_id)
        return self.builder.build(provider_id, state=state, nonce=nonce, extra_params=extra_params)

    async def exchange_code_for_tokens(
        self, provider_id: str, code: str, state: str, code_verifier: str | None = None
    ) -> AuthResult:
        # Discovery is resolved by the token client once the state is consumed.
        result = await self.tokens.exchange(provider_id, code, state, code_verifier)
        if result.success:
            event = AuthEvent(
                type="authentication_success", provider_id=provider_id, user=result.user
            )
        else:
            event = AuthEvent(
                type="authentication_failure",
                provider_id=provider_id,
                error=result.error,
                error_code=result.error_code,
            )
        await self._notify(event)
        return result

    async def refresh_access_token(self, provider_id: str, refresh_token: str) -> RefreshResult:
        await self._refresh_endpoints(provider_id)
        return await self.tokens.refresh(provider_id, refresh_token)

    async def revoke_token(
        self, provider_id: str, token: str, token_type_hint: TokenTypeHint = "access_token"
    ) -> RevokeResult:
        return await self.tokens.revoke(provider_id, token, token_type_hint)

    async def validate_id_token(
        self, provider_id: str, id_token: str, expected_nonce: str | None = None
    ) -> IdTokenValidation:
        if provider_id in self.registry:
            await self._refresh_endpoints(provider_id)
        return await self.validator.validate(provider_id, id_token, expected_nonce)

    async def _notify(self, event: AuthEvent) -> None:
        for listener in self.listeners:
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("oauth_listener_failed", event_type=event.type)
