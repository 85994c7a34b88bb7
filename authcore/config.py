"""Configuration management using environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, description="HTTP API port", ge=1, le=65535)
    cors_allowed_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: str = Field(default="development", description="Environment name")

    # Outbound HTTP to identity providers
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout for every call to an identity provider", ge=1, le=60
    )
    http_user_agent: str = Field(default="authcore/0.1.0", description="User-Agent header")

    # Caches
    discovery_ttl_seconds: int = Field(
        default=3600, description="How long a discovery document stays fresh", ge=0
    )
    jwks_cache_max_entries: int = Field(
        default=5, description="Signing keys kept per provider", ge=1
    )
    jwks_cache_ttl_seconds: int = Field(default=600, description="Signing key TTL", ge=1)
    jwks_requests_per_minute: int = Field(
        default=10, description="Ceiling on JWKS fetches per provider", ge=1
    )

    # Authorization requests
    authorization_request_ttl_seconds: int = Field(
        default=600, description="Lifetime of a pending login attempt", ge=1
    )
    authorization_request_max_pending: int = Field(
        default=10_000, description="Upper bound on pending login attempts", ge=1
    )
    default_clock_tolerance_seconds: int = Field(
        default=60, description="Clock skew accepted on ID token exp", ge=0
    )

    # Built-in providers, registered only when credentials are present
    google_client_id: str | None = Field(None, description="Google OAuth client ID")
    google_client_secret: SecretStr | None = Field(None, description="Google OAuth client secret")
    google_redirect_uri: str = Field(
        default="http://localhost:3000/auth/oauth2/callback/google",
        description="Redirect URI registered with Google",
    )
    azure_client_id: str | None = Field(None, description="Azure AD application ID")
    azure_client_secret: SecretStr | None = Field(None, description="Azure AD client secret")
    azure_tenant_id: str = Field(default="common", description="Azure AD tenant")
    azure_redirect_uri: str = Field(
        default="http://localhost:3000/auth/oauth2/callback/microsoft",
        description="Redirect URI registered with Azure AD",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Returns the configured CORS origins as a list."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config()
