"""Per-provider cache of ID token signing keys."""

import time
from collections.abc import Callable
from typing import Any

import httpx
from authlib.jose import JsonWebKey
from authlib.jose.errors import JoseError
from cachetools import TTLCache

from authcore.models.errors import (
    ConfigurationError,
    KeyNotFoundError,
    ProtocolError,
    RateLimitedError,
)
from authcore.oauth.http import request_json
from authcore.registry.provider_registry import ProviderRegistry
from authcore.utils.logging import get_logger
from authcore.utils.rate_limit import TokenBucket
from authcore.utils.singleflight import SingleFlight

logger = get_logger(__name__)


class ProviderKeySet:
    """Signing keys of one provider: bounded LRU with TTL and a fetch budget."""

    def __init__(
        self,
        provider_id: str,
        jwks_url: str,
        max_entries: int,
        ttl_seconds: float,
        requests_per_minute: int,
        clock: Callable[[], float],
    ) -> None:
        self.provider_id = provider_id
        self.jwks_url = jwks_url
        self.keys: TTLCache[str, Any] = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=clock)
        self.limiter = TokenBucket(requests_per_minute, period=60.0, clock=clock)


class JWKSCache:
    """
    Resolves ``(provider, kid)`` to a public key.

    A miss fetches the provider's whole key set once (concurrent misses share
    the fetch) and caches every key individually by ``kid``, so a rotation
    that introduces several keys costs one request. Fetches are capped by a
    token bucket per provider; an exhausted bucket fails the lookup instead
    of hitting the provider.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        http_client: httpx.AsyncClient,
        max_entries: int = 5,
        ttl_seconds: float = 600,
        requests_per_minute: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._http = http_client
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._requests_per_minute = requests_per_minute
        self._clock = clock
        self._key_sets: dict[str, ProviderKeySet] = {}
        self._flights: SingleFlight[None] = SingleFlight()

    def _key_set_for(self, provider_id: str) -> ProviderKeySet:
        config = self._registry.resolve(provider_id)
        if not config.jwks_url:
            raise ConfigurationError(f"Provider '{provider_id}' has no JWKS URL")

        key_set = self._key_sets.get(provider_id)
        if key_set is None or key_set.jwks_url != config.jwks_url:
            key_set = ProviderKeySet(
                provider_id,
                config.jwks_url,
                self._max_entries,
                self._ttl,
                self._requests_per_minute,
                self._clock,
            )
            self._key_sets[provider_id] = key_set
        return key_set

    async def get_signing_key(self, provider_id: str, kid: str) -> Any:
        """
        Returns the provider's public key for ``kid``.

        Raises:
            NotFoundError: If the provider is not configured.
            ConfigurationError: If the provider has no JWKS URL.
            KeyNotFoundError: If the provider's key set has no such key.
            RateLimitedError: If a fetch is needed but the budget is spent.
            NetworkError, ProtocolError: If the key set cannot be fetched.
        """
        key_set = self._key_set_for(provider_id)
        key = key_set.keys.get(kid)
        if key is not None:
            return key

        await self._flights.run(provider_id, lambda: self._refresh(key_set))

        key = key_set.keys.get(kid)
        if key is None:
            logger.warning("oauth_jwks_key_not_found", provider_id=provider_id, kid=kid)
            raise KeyNotFoundError(
                f"Signing key '{kid}' not found for provider '{provider_id}'",
                {"provider_id": provider_id, "kid": kid},
            )
        return key

    async def _refresh(self, key_set: ProviderKeySet) -> None:
        if not key_set.limiter.try_acquire():
            retry_after = key_set.limiter.retry_after()
            logger.warning(
                "oauth_jwks_rate_limited",
                provider_id=key_set.provider_id,
                retry_after=round(retry_after, 2),
            )
            raise RateLimitedError(
                f"JWKS requests for provider '{key_set.provider_id}' are rate limited",
                retry_after,
            )

        logger.info(
            "oauth_jwks_fetching", provider_id=key_set.provider_id, jwks_uri=key_set.jwks_url
        )
        jwks_data = await request_json(self._http, "GET", key_set.jwks_url)
        keys = jwks_data.get("keys")
        if not isinstance(keys, list):
            raise ProtocolError(
                f"JWKS at {key_set.jwks_url} has no 'keys' array", {"url": key_set.jwks_url}
            )

        imported = 0
        for jwk in keys:
            if not isinstance(jwk, dict) or not jwk.get("kid"):
                continue
            if jwk.get("use", "sig") != "sig":
                continue
            try:
                key_set.keys[jwk["kid"]] = JsonWebKey.import_key(jwk)
            except (JoseError, ValueError, KeyError, TypeError) as e:
                logger.warning(
                    "oauth_jwks_key_skipped",
                    provider_id=key_set.provider_id,
                    kid=jwk.get("kid"),
                    error=str(e),
                )
                continue
            imported += 1

        logger.info(
            "oauth_jwks_fetch_success",
            provider_id=key_set.provider_id,
            jwks_uri=key_set.jwks_url,
            key_count=len(keys),
            imported=imported,
        )

    def evict(self, provider_id: str) -> None:
        self._key_sets.pop(provider_id, None)

    def clear(self) -> None:
        self._key_sets.clear()
        self._flights.cancel_all()
