"""OpenID Connect discovery document resolution.

Documents are fetched lazily, cached per provider until stale, and fetched
at most once at a time per provider. The endpoints they advertise are
overlaid on the provider configuration held by the registry.
"""

import time
from collections.abc import Callable
from typing import Any

import httpx
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate

from authcore.models.discovery import DISCOVERY_SCHEMA, DiscoveryDocument
from authcore.models.errors import OAuthCoreError, ProtocolError
from authcore.models.provider import OAuth2ProviderConfig, OIDCProviderConfig
from authcore.oauth.http import request_json
from authcore.registry.provider_registry import ProviderRegistry
from authcore.utils.logging import get_logger
from authcore.utils.singleflight import SingleFlight

logger = get_logger(__name__)


class DiscoveryResolver:
    def __init__(
        self,
        registry: ProviderRegistry,
        http_client: httpx.AsyncClient,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._http = http_client
        self._ttl = ttl_seconds
        self._clock = clock
        self._documents: dict[str, DiscoveryDocument] = {}
        self._flights: SingleFlight[DiscoveryDocument | None] = SingleFlight()

    def cached(self, provider_id: str) -> DiscoveryDocument | None:
        """Returns the last good document without fetching, stale or not."""
        return self._documents.get(provider_id)

    async def resolve(self, provider_id: str, force: bool = False) -> DiscoveryDocument | None:
        """
        Returns the provider's discovery document.

        A fresh cached document is returned as is. Otherwise one fetch is
        issued (shared by concurrent callers). If that fetch fails the last
        good document is returned even when stale, or None when there never
        was one, in which case the manual configuration stays in effect.
        Plain OAuth2 providers and providers without discovery return None.

        Raises:
            NotFoundError: If the provider is not configured.
        """
        config = self._registry.resolve(provider_id)
        match config:
            case OIDCProviderConfig(use_discovery=True):
                pass
            case OIDCProviderConfig() | OAuth2ProviderConfig():
                return None

        cached = self._documents.get(provider_id)
        if cached is not None and not force and not cached.is_stale(self._clock()):
            logger.debug("oauth_discovery_cache_hit", provider_id=provider_id)
            return cached

        return await self._flights.run(provider_id, lambda: self._load(config))

    async def _load(self, config: OIDCProviderConfig) -> DiscoveryDocument | None:
        provider_id = config.id
        url = config.effective_discovery_url
        previous = self._documents.get(provider_id)
        if not url:
            return previous

        logger.info("oauth_discovery_cache_miss", provider_id=provider_id, url=url)
        try:
            raw = await self.fetch(url)
        except OAuthCoreError as e:
            logger.warning(
                "oauth_discovery_load_failed",
                provider_id=provider_id,
                url=url,
                error=e.message,
                fallback="stale_document" if previous else "manual_configuration",
            )
            return previous

        if provider_id not in self._registry:
            # Deleted while the fetch was in flight.
            return None

        now = self._clock()
        document = DiscoveryDocument(
            provider_id=provider_id, fetched_at=now, stale_at=now + self._ttl, raw=raw
        )
        if document.issuer and document.issuer.rstrip("/") != config.issuer.rstrip("/"):
            logger.warning(
                "oauth_discovery_issuer_mismatch",
                provider_id=provider_id,
                configured=config.issuer,
                discovered=document.issuer,
            )

        overrides = document.endpoint_overrides()
        self._documents[provider_id] = document
        self._registry.apply_endpoints(provider_id, overrides)
        logger.info(
            "oauth_discovery_loaded",
            provider_id=provider_id,
            issuer=config.issuer,
            overridden=sorted(overrides),
        )
        return document

    async def fetch(self, url: str) -> dict[str, Any]:
        """
        Fetches and shape-checks a discovery document without caching it.

        Raises:
            NetworkError: If the provider cannot be reached in time.
            ProtocolError: If the response is not a well-formed document.
        """
        raw = await request_json(self._http, "GET", url)
        try:
            validate(instance=raw, schema=DISCOVERY_SCHEMA)
        except JSONSchemaValidationError as e:
            raise ProtocolError(
                f"Malformed discovery document at {url}: {e.message}", {"url": url}
            ) from e
        return raw

    def evict(self, provider_id: str) -> None:
        self._documents.pop(provider_id, None)

    def clear(self) -> None:
        self._documents.clear()
        self._flights.cancel_all()
