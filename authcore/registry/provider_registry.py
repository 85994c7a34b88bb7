from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from authcore.models.errors import ConfigurationError, NotFoundError
from authcore.models.provider import (
    ALLOWED_SIGNING_ALGORITHMS,
    OAuth2ProviderConfig,
    OIDCProviderConfig,
    provider_config_adapter,
)
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

AnyProviderConfig = OAuth2ProviderConfig | OIDCProviderConfig

IMMUTABLE_FIELDS = ("id", "kind")


class ProviderRegistry:
    """
    Holds validated provider configurations for one service instance.

    Configurations are administered elsewhere and handed in through
    ``configure``/``update``. Reads through ``get``/``list`` never expose the
    client secret; the flow components use ``resolve``, which returns the
    full configuration with any discovered endpoints applied.
    """

    def __init__(self) -> None:
        self._configs: dict[str, AnyProviderConfig] = {}
        self._endpoint_overrides: dict[str, dict[str, str]] = {}

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)

    def configure(self, config: AnyProviderConfig | Mapping[str, Any]) -> AnyProviderConfig:
        """
        Validates and stores a provider configuration, replacing any previous
        one with the same id.

        Args:
            config: A provider config model, or a mapping tagged with ``kind``.

        Returns:
            The stored configuration, secret redacted.

        Raises:
            ConfigurationError: If the configuration is incomplete or invalid.
        """
        parsed = self._parse(config)
        self._validate_required_fields(parsed)
        self._validate_signing_algorithm(parsed)

        self._configs[parsed.id] = parsed
        self._endpoint_overrides.pop(parsed.id, None)
        logger.info(
            "oauth_provider_configured",
            provider_id=parsed.id,
            kind=parsed.kind,
            family=parsed.family.value,
            organization_id=parsed.organization_id,
        )
        return parsed.redacted()

    def _parse(self, config: AnyProviderConfig | Mapping[str, Any]) -> AnyProviderConfig:
        if isinstance(config, (OAuth2ProviderConfig, OIDCProviderConfig)):
            return config
        try:
            return provider_config_adapter.validate_python(dict(config))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid provider configuration: {e.error_count()} error(s)",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e

    def _validate_required_fields(self, config: AnyProviderConfig) -> None:
        missing = config.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Provider '{config.id}' is missing required fields: {', '.join(missing)}",
                {"provider_id": config.id, "missing": missing},
            )

    def _validate_signing_algorithm(self, config: AnyProviderConfig) -> None:
        if not isinstance(config, OIDCProviderConfig):
            return
        if config.id_token_signing_alg not in ALLOWED_SIGNING_ALGORITHMS:
            raise ConfigurationError(
                f"Provider '{config.id}' uses unsupported ID token algorithm "
                f"'{config.id_token_signing_alg}'",
                {"allowed": sorted(ALLOWED_SIGNING_ALGORITHMS)},
            )

    def get(self, provider_id: str) -> AnyProviderConfig:
        """Returns the configuration with the client secret removed."""
        return self.resolve(provider_id).redacted()

    def list(self, organization_id: str) -> list[AnyProviderConfig]:
        """Returns every provider of an organization, secrets removed."""
        return [
            self.resolve(provider_id).redacted()
            for provider_id, config in self._configs.items()
            if config.organization_id == organization_id
        ]

    def resolve(self, provider_id: str) -> AnyProviderConfig:
        """
        Returns the full configuration used by the login flow, with discovered
        endpoints overlaid on the manually configured ones.

        Raises:
            NotFoundError: If no provider has this id.
        """
        config = self._configs.get(provider_id)
        if config is None:
            raise NotFoundError(provider_id)
        overrides = self._endpoint_overrides.get(provider_id)
        if overrides:
            return config.model_copy(update=overrides)
        return config

    def update(self, provider_id: str, patch: Mapping[str, Any]) -> AnyProviderConfig:
        """Applies a partial update and re-validates the result."""
        existing = self._configs.get(provider_id)
        if existing is None:
            raise NotFoundError(provider_id)

        for field_name in IMMUTABLE_FIELDS:
            if field_name in patch and patch[field_name] != getattr(existing, field_name):
                raise ConfigurationError(
                    f"Field '{field_name}' of provider '{provider_id}' cannot be changed"
                )

        merged = {**existing.model_dump(), **patch}
        return self.configure(merged)

    def delete(self, provider_id: str) -> None:
        if self._configs.pop(provider_id, None) is None:
            raise NotFoundError(provider_id)
        self._endpoint_overrides.pop(provider_id, None)
        logger.info("oauth_provider_deleted", provider_id=provider_id)

    def apply_endpoints(self, provider_id: str, overrides: Mapping[str, str]) -> None:
        """Records endpoints learned from discovery for a configured provider."""
        if provider_id not in self._configs:
            raise NotFoundError(provider_id)
        self._endpoint_overrides[provider_id] = dict(overrides)

    def clear(self) -> None:
        self._configs.clear()
        self._endpoint_overrides.clear()
