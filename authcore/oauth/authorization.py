"""Authorization URL construction and the server-side store of pending logins."""

import base64
import hashlib
import secrets
import time
from collections.abc import Callable, Mapping
from urllib.parse import urlencode

from cachetools import TTLCache

from authcore.models.auth import AuthorizationRequest, AuthorizationUrl
from authcore.models.errors import ConfigurationError, ErrorCode, InvalidStateError
from authcore.models.provider import OAuth2ProviderConfig, OIDCProviderConfig
from authcore.registry.provider_registry import ProviderRegistry
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

# 256 bits for state, nonce and the PKCE verifier.
RANDOM_BYTES = 32

# Parameters that bind the request to this login attempt; extra params cannot override them.
PROTECTED_PARAMS = frozenset(
    {
        "response_type",
        "client_id",
        "redirect_uri",
        "state",
        "nonce",
        "code_challenge",
        "code_challenge_method",
    }
)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """RFC 7636 verifier: 32 random bytes, base64url without padding (43 chars)."""
    return _b64url(secrets.token_bytes(RANDOM_BYTES))


def code_challenge_for(code_verifier: str) -> str:
    """S256 challenge: base64url(SHA-256(verifier)) without padding."""
    return _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


class AuthorizationRequestStore:
    """
    Authorization requests keyed by state.

    Entries expire after ``ttl_seconds``. Consuming a request marks it
    used and keeps it until expiry, so a replayed state is told apart from
    one that was never issued. A state can be exchanged at most once.
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_pending: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._requests: TTLCache[str, AuthorizationRequest] = TTLCache(
            maxsize=max_pending, ttl=ttl_seconds, timer=clock
        )

    def _live(self) -> list[AuthorizationRequest]:
        self._requests.expire()
        requests = (self._requests.get(state) for state in list(self._requests))
        return [request for request in requests if request is not None]

    def _pending(self) -> list[AuthorizationRequest]:
        return [request for request in self._live() if not request.consumed]

    def __len__(self) -> int:
        return len(self._pending())

    def __contains__(self, state: object) -> bool:
        request = self._requests.get(state)
        return request is not None and not request.consumed

    def save(self, request: AuthorizationRequest) -> None:
        if request.state in self._requests:
            raise InvalidStateError("State value is already in use")
        self._requests[request.state] = request

    def consume(self, state: str, provider_id: str) -> AuthorizationRequest:
        """
        Marks the request issued for ``state`` as used and returns it.

        Raises:
            InvalidStateError: If the state was never issued, was already
                consumed, has expired, or was issued for another provider.
        """
        request = self._requests.get(state)
        if request is None:
            raise InvalidStateError("Unknown or expired state")
        if request.consumed:
            logger.warning("oauth_state_replayed", provider_id=provider_id)
            raise InvalidStateError("State has already been used")
        request.consumed = True
        if request.is_expired(self._clock()):
            raise InvalidStateError("Authorization request has expired")
        if request.provider_id != provider_id:
            raise InvalidStateError("State was issued for a different provider")
        return request

    def discard(self, state: str) -> bool:
        """Drops a pending request without using it, e.g. after the user denied consent."""
        request = self._requests.pop(state, None)
        return request is not None and not request.consumed

    def discard_provider(self, provider_id: str) -> int:
        stale = [request for request in self._live() if request.provider_id == provider_id]
        for request in stale:
            self._requests.pop(request.state, None)
        return sum(1 for request in stale if not request.consumed)

    def clear(self) -> None:
        self._requests.clear()


class AuthorizationRequestBuilder:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: AuthorizationRequestStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._store = store
        self._clock = clock

    def build(
        self,
        provider_id: str,
        state: str | None = None,
        nonce: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> AuthorizationUrl:
        """
        Builds the provider's authorization URL for a new login attempt and
        records the attempt in the store before returning.

        Raises:
            NotFoundError: If the provider is not configured.
            ConfigurationError: If the provider is disabled.
            InvalidStateError: If a caller-supplied state is already pending.
        """
        config = self._registry.resolve(provider_id)
        if not config.enabled:
            raise ConfigurationError(
                f"Provider '{provider_id}' is disabled", code=ErrorCode.PROVIDER_DISABLED
            )

        state = state or secrets.token_hex(RANDOM_BYTES)
        code_verifier = generate_code_verifier()
        code_challenge = code_challenge_for(code_verifier)

        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": " ".join(config.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        match config:
            case OIDCProviderConfig():
                nonce = nonce or secrets.token_hex(RANDOM_BYTES)
                params["nonce"] = nonce
            case OAuth2ProviderConfig():
                nonce = None

        for source in (config.additional_params, extra_params or {}):
            for key, value in source.items():
                if key in PROTECTED_PARAMS:
                    logger.warning(
                        "oauth_authorization_param_ignored", provider_id=provider_id, param=key
                    )
                    continue
                params[key] = value

        now = self._clock()
        self._store.save(
            AuthorizationRequest(
                state=state,
                provider_id=provider_id,
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                nonce=nonce,
                created_at=now,
                expires_at=now + self._store.ttl_seconds,
            )
        )

        separator = "&" if "?" in config.authorization_url else "?"
        url = f"{config.authorization_url}{separator}{urlencode(params)}"

        logger.info(
            "oauth_authorization_url_generated",
            provider_id=provider_id,
            state=state,
            has_nonce=nonce is not None,
        )
        return AuthorizationUrl(url=url, state=state, nonce=nonce, code_verifier=code_verifier)
