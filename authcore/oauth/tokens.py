"""Token endpoint client: code exchange, refresh and revocation."""

import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import httpx
from pydantic import ValidationError

from authcore.models.auth import (
    AuthorizationRequest,
    AuthResult,
    RefreshResult,
    RevokeResult,
    TokenSet,
    ValidatedIdentity,
)
from authcore.models.errors import (
    ConfigurationError,
    InvalidStateError,
    OAuthCoreError,
    ProtocolError,
    TokenValidationError,
)
from authcore.models.provider import OAuth2ProviderConfig, OIDCProviderConfig
from authcore.oauth.authorization import AuthorizationRequestStore
from authcore.oauth.discovery import DiscoveryResolver
from authcore.oauth.http import FORM_HEADERS, request_json, send
from authcore.oauth.id_token import IdTokenValidator
from authcore.oauth.userinfo import identity_from_id_token, normalize
from authcore.registry.provider_registry import AnyProviderConfig, ProviderRegistry
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

TokenTypeHint = Literal["access_token", "refresh_token"]


def parse_token_response(body: dict[str, Any]) -> TokenSet:
    """Reads an RFC 6749 token response."""
    if not isinstance(body.get("access_token"), str) or not body["access_token"]:
        raise ProtocolError("Token response has no access_token")
    expires_in = body.get("expires_in")
    try:
        return TokenSet(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or None,
            id_token=body.get("id_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            token_type=body.get("token_type") or "Bearer",
            scope=body.get("scope"),
        )
    except (ValueError, TypeError, ValidationError) as e:
        raise ProtocolError(f"Malformed token response: {e}") from e


class TokenExchangeClient:
    """
    Talks to a provider's token, user-info and revocation endpoints.

    Lookup errors raise. Everything that can go wrong once the flow has
    started (state, network, protocol, ID token) comes back as an
    unsuccessful result. Nothing is retried: an authorization code is
    single-use, so a failed exchange is reported once.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: AuthorizationRequestStore,
        validator: IdTokenValidator,
        discovery: DiscoveryResolver,
        http_client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._store = store
        self._validator = validator
        self._discovery = discovery
        self._http = http_client
        self._clock = clock

    async def exchange(
        self, provider_id: str, code: str, state: str, code_verifier: str | None = None
    ) -> AuthResult:
        """
        Exchanges an authorization code for tokens and the user's identity.

        The pending request for ``state`` is consumed first; an unknown,
        reused, expired or foreign state fails here without any call to
        the provider, discovery included. Endpoints are refreshed only
        after the state checks out.

        Raises:
            NotFoundError: If the provider is not configured.
        """
        # Unknown providers raise before the state is touched.
        self._registry.resolve(provider_id)
        try:
            request = self._store.consume(state, provider_id)
            if code_verifier is not None and not secrets.compare_digest(
                code_verifier.encode(), request.code_verifier.encode()
            ):
                raise InvalidStateError("Code verifier does not match the authorization request")
            await self._discovery.resolve(provider_id)
            config = self._registry.resolve(provider_id)
            tokens = await self._request_tokens(
                config,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": config.redirect_uri,
                    "code_verifier": request.code_verifier,
                },
            )
            user = await self._identity(config, tokens, request)
        except OAuthCoreError as e:
            logger.warning(
                "oauth_token_exchange_failed",
                provider_id=provider_id,
                error_code=e.code.value,
                error=e.message,
            )
            return AuthResult(success=False, error=e.message, error_code=e.code, state=state)

        logger.info("oauth_token_exchange_successful", provider_id=provider_id, user_id=user.id)
        return AuthResult(success=True, user=user, tokens=tokens, state=state)

    async def _request_tokens(self, config: AnyProviderConfig, grant: dict[str, str]) -> TokenSet:
        form = {"client_id": config.client_id, "client_secret": config.secret, **grant}
        body = await request_json(
            self._http, "POST", config.token_url, data=form, headers=FORM_HEADERS
        )
        return parse_token_response(body)

    async def _identity(
        self, config: AnyProviderConfig, tokens: TokenSet, request: AuthorizationRequest
    ) -> ValidatedIdentity:
        match config:
            case OIDCProviderConfig() if tokens.id_token:
                validation = await self._validator.validate(
                    config.id, tokens.id_token, expected_nonce=request.nonce
                )
                if not validation.valid:
                    raise TokenValidationError(
                        f"Invalid ID token: {validation.error}", code=validation.reason
                    )
                return identity_from_id_token(
                    validation.payload or {}, config.id, validation.expires_at
                )
            case OIDCProviderConfig() | OAuth2ProviderConfig():
                return await self.fetch_user_info(config, tokens)

    async def fetch_user_info(
        self, config: AnyProviderConfig, tokens: TokenSet
    ) -> ValidatedIdentity:
        """Calls the user-info endpoint with the access token and normalizes the answer."""
        if not config.user_info_url:
            raise ConfigurationError(f"Provider '{config.id}' has no user-info URL")
        claims = await request_json(
            self._http,
            "GET",
            config.user_info_url,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        expires_at = None
        if tokens.expires_in is not None:
            expires_at = datetime.fromtimestamp(self._clock(), tz=UTC) + timedelta(
                seconds=tokens.expires_in
            )
        return normalize(config.family, claims, config.id, expires_at)

    async def refresh(self, provider_id: str, refresh_token: str) -> RefreshResult:
        """
        Trades a refresh token for new tokens. When the provider does not
        rotate refresh tokens the caller's token is carried over.

        Raises:
            NotFoundError: If the provider is not configured.
        """
        config = self._registry.resolve(provider_id)
        try:
            tokens = await self._request_tokens(
                config, {"grant_type": "refresh_token", "refresh_token": refresh_token}
            )
        except OAuthCoreError as e:
            logger.warning(
                "oauth_token_refresh_failed",
                provider_id=provider_id,
                error_code=e.code.value,
                error=e.message,
            )
            return RefreshResult(success=False, error=e.message, error_code=e.code)

        if tokens.refresh_token is None:
            tokens = tokens.model_copy(update={"refresh_token": refresh_token})
        logger.info("oauth_token_refreshed", provider_id=provider_id)
        return RefreshResult(success=True, tokens=tokens)

    async def revoke(
        self, provider_id: str, token: str, token_type_hint: TokenTypeHint = "access_token"
    ) -> RevokeResult:
        """
        Revokes a token at the provider's revocation endpoint. A provider
        without one is treated as success with ``revoked=False``.

        Raises:
            NotFoundError: If the provider is not configured.
        """
        config = self._registry.resolve(provider_id)
        document = await self._discovery.resolve(provider_id)
        endpoint = document.revocation_endpoint if document else None
        if not endpoint:
            logger.warning("oauth_token_revocation_not_supported", provider_id=provider_id)
            return RevokeResult(success=True, revoked=False)

        try:
            await send(
                self._http,
                "POST",
                endpoint,
                data={
                    "token": token,
                    "token_type_hint": token_type_hint,
                    "client_id": config.client_id,
                    "client_secret": config.secret,
                },
                headers=FORM_HEADERS,
            )
        except OAuthCoreError as e:
            logger.warning(
                "oauth_token_revocation_failed",
                provider_id=provider_id,
                error_code=e.code.value,
                error=e.message,
            )
            return RevokeResult(success=False, error=e.message, error_code=e.code)

        logger.info("oauth_token_revoked", provider_id=provider_id, token_type_hint=token_type_hint)
        return RevokeResult(success=True, revoked=True)
