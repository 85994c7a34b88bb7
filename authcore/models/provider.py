"""Provider configuration models.

A provider is either a plain OAuth2 provider or an OpenID Connect provider.
The two variants are tagged by ``kind`` and parsed as a discriminated union,
so a configuration is never classified by which optional fields it happens
to carry.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, SecretStr, TypeAdapter, field_validator

# Asymmetric JWS algorithms accepted for ID tokens. "none" and the HMAC
# family are never accepted.
ALLOWED_SIGNING_ALGORITHMS = frozenset(
    {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512", "ES256", "ES384", "ES512"}
)

REQUIRED_FIELDS = ("client_id", "client_secret", "authorization_url", "token_url", "redirect_uri")


class ProviderFamily(str, Enum):
    """Identity provider family, selects the user-info claim mapping."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"
    OKTA = "okta"
    AUTH0 = "auth0"
    CUSTOM = "custom"


class _ProviderConfigBase(BaseModel):
    id: str = Field(..., min_length=1, description="Provider identifier, unique per service")
    organization_id: str = Field(default="default", description="Owning organization")
    name: str = Field(default="", description="Display name")
    family: ProviderFamily = Field(default=ProviderFamily.CUSTOM)
    client_id: str = ""
    client_secret: SecretStr | None = None
    authorization_url: str = ""
    token_url: str = ""
    user_info_url: str | None = None
    jwks_url: str | None = None
    scopes: list[str] = Field(default_factory=list)
    redirect_uri: str = ""
    additional_params: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: object) -> object:
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("scopes")
    @classmethod
    def _dedupe_scopes(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for scope in value:
            scope = scope.strip()
            if scope:
                seen.setdefault(scope, None)
        return list(seen)

    def missing_fields(self) -> list[str]:
        """Names of fields that must be set before the provider can be used."""
        missing = []
        for field_name in REQUIRED_FIELDS:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if not value:
                missing.append(field_name)
        if not self.scopes:
            missing.append("scopes")
        return missing

    @property
    def secret(self) -> str:
        return self.client_secret.get_secret_value() if self.client_secret else ""

    def redacted(self):
        """Copy of this configuration with the client secret removed."""
        return self.model_copy(update={"client_secret": None})


class OAuth2ProviderConfig(_ProviderConfigBase):
    """Plain OAuth2 provider: no ID token, identity comes from the user-info endpoint."""

    kind: Literal["oauth2"] = "oauth2"


class OIDCProviderConfig(_ProviderConfigBase):
    """OpenID Connect provider."""

    kind: Literal["oidc"] = "oidc"
    issuer: str = ""
    discovery_url: str | None = None
    use_discovery: bool = False
    id_token_signing_alg: str = "RS256"
    end_session_endpoint: str | None = None
    clock_tolerance: int = Field(default=60, ge=0, description="Seconds of skew accepted on exp")

    def missing_fields(self) -> list[str]:
        missing = super().missing_fields()
        if not self.issuer:
            missing.append("issuer")
        return missing

    @property
    def effective_discovery_url(self) -> str | None:
        if self.discovery_url:
            return self.discovery_url
        if self.issuer:
            return f"{self.issuer.rstrip('/')}/.well-known/openid-configuration"
        return None


ProviderConfig = Annotated[OAuth2ProviderConfig | OIDCProviderConfig, Field(discriminator="kind")]

provider_config_adapter: TypeAdapter[OAuth2ProviderConfig | OIDCProviderConfig] = TypeAdapter(
    ProviderConfig
)
