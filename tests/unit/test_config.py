"""Unit tests for the configuration module."""

import pytest
from pydantic import ValidationError

from authcore.config import Config, get_config


@pytest.fixture(autouse=True)
def clear_config_cache() -> None:
    """Clear the config cache before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the Config class loads default values correctly."""
    for name in ("ENVIRONMENT", "LOG_LEVEL", "PORT", "GOOGLE_CLIENT_ID", "AZURE_CLIENT_ID"):
        monkeypatch.delenv(name, raising=False)
    config = Config(_env_file=None)  # Disable .env file loading for isolated test

    assert config.server_host == "0.0.0.0"
    assert config.port == 8080
    assert config.log_level == "INFO"
    assert config.environment == "development"
    assert config.http_timeout_seconds == 10
    assert config.discovery_ttl_seconds == 3600
    assert config.jwks_cache_max_entries == 5
    assert config.jwks_cache_ttl_seconds == 600
    assert config.jwks_requests_per_minute == 10
    assert config.authorization_request_ttl_seconds == 600
    assert config.default_clock_tolerance_seconds == 60
    assert config.google_client_id is None
    assert config.azure_tenant_id == "common"


def test_config_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that environment variables override default values."""
    monkeypatch.setenv("SERVER_HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("JWKS_REQUESTS_PER_MINUTE", "3")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "abc.apps.googleusercontent.com")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "shh")

    config = get_config()

    assert config.server_host == "127.0.0.1"
    assert config.port == 9000
    assert config.log_level == "DEBUG"
    assert config.environment == "production"
    assert config.jwks_requests_per_minute == 3
    assert config.google_client_id == "abc.apps.googleusercontent.com"
    assert config.google_client_secret.get_secret_value() == "shh"
    assert "shh" not in repr(config)


def test_config_rejects_out_of_range_values(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that validation fails for values outside their bounds."""
    monkeypatch.setenv("PORT", "70000")
    monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValidationError) as excinfo:
        Config(_env_file=None)
    error_fields = {error["loc"][0] for error in excinfo.value.errors()}
    assert error_fields == {"port", "http_timeout_seconds"}


def test_cors_origins_parsing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the comma-separated origin list is split and trimmed."""
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", " https://a.example , ,https://b.example")
    config = Config(_env_file=None)
    assert config.cors_origins == ["https://a.example", "https://b.example"]


def test_get_config_is_cached() -> None:
    """Test that the get_config function caches its result."""
    config1 = get_config()
    config2 = get_config()
    assert config1 is config2
