import time
from collections.abc import Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
import respx
from authlib.jose.rfc7517.jwk import JsonWebKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwt as jose_jwt

from authcore.config import Config, get_config
from authcore.oauth.service import OAuthService
from authcore.utils.logging import configure_logging

ISSUER = "https://accounts.google.com"
CLIENT_ID = "test-client-id.apps.googleusercontent.com"
CLIENT_SECRET = "test-client-secret"
DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"
AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
REDIRECT_URI = "http://localhost:3000/auth/oauth2/callback/google"


def pytest_configure(config):
    """
    Routes structlog output through the application renderer for the test session.
    Settings are built with `_env_file=None` in fixtures, so no .env is loaded here.
    """
    configure_logging("WARNING")


class FakeClock:
    """Manually advanced replacement for time.time / time.monotonic."""

    def __init__(self, start: float | None = None) -> None:
        self.now = float(int(start if start is not None else time.time()))

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _generate_key(kid: str) -> tuple[str, dict[str, Any]]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    public_jwk = JsonWebKey.import_key(public_pem).as_dict()
    public_jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return private_pem, public_jwk


@pytest.fixture(scope="session")
def signing_keys() -> dict[str, tuple[str, dict[str, Any]]]:
    """
    RSA key pairs for signing test ID tokens, by kid.
    ``main`` and ``rotated`` are published by the provider, ``untrusted`` is not.
    """
    return {kid: _generate_key(kid) for kid in ("main", "rotated", "untrusted")}


@pytest.fixture
def jwks_document(signing_keys) -> dict[str, Any]:
    return {"keys": [signing_keys["main"][1], signing_keys["rotated"][1]]}


@pytest.fixture
def mixed_jwks_document(jwks_document) -> dict[str, Any]:
    """The published RSA keys plus an EC P-256 key under kid ``ec1``."""
    ec_key = ec.generate_private_key(ec.SECP256R1())
    public_pem = ec_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    ec_jwk = JsonWebKey.import_key(public_pem).as_dict()
    ec_jwk.update({"kid": "ec1", "alg": "ES256", "use": "sig"})
    return {"keys": [*jwks_document["keys"], ec_jwk]}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_id_token(signing_keys, clock) -> Callable[..., str]:
    """Factory for signed ID tokens; claims default to a valid token for the test client."""

    def _make(
        kid: str | None = "main",
        signing_kid: str = "main",
        claims_override: dict[str, Any] | None = None,
        algorithm: str = "RS256",
    ) -> str:
        now = int(clock())
        claims = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "sub": "110169484474386276334",
            "email": "ada@example.com",
            "email_verified": True,
            "name": "Ada Lovelace",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "picture": "https://example.com/ada.png",
            "iat": now,
            "exp": now + 300,
        }
        claims.update(claims_override or {})
        headers = {"kid": kid} if kid else {}
        private_pem = signing_keys[signing_kid][0]
        return jose_jwt.encode(claims, private_pem, algorithm=algorithm, headers=headers)

    return _make


@pytest.fixture
def discovery_document() -> dict[str, Any]:
    return {
        "issuer": ISSUER,
        "authorization_endpoint": AUTHORIZATION_URL,
        "token_endpoint": TOKEN_URL,
        "userinfo_endpoint": "https://openidconnect.googleapis.com/v1/userinfo",
        "jwks_uri": JWKS_URL,
        "revocation_endpoint": "https://oauth2.googleapis.com/revoke",
        "response_types_supported": ["code", "id_token"],
        "code_challenge_methods_supported": ["plain", "S256"],
    }


@pytest.fixture
def google_provider() -> dict[str, Any]:
    """OIDC provider configuration without discovery."""
    return {
        "kind": "oidc",
        "id": "google-oauth2",
        "organization_id": "default",
        "name": "Google OAuth2",
        "family": "google",
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "authorization_url": AUTHORIZATION_URL,
        "token_url": TOKEN_URL,
        "user_info_url": USERINFO_URL,
        "jwks_url": JWKS_URL,
        "scopes": ["openid", "email", "profile"],
        "redirect_uri": REDIRECT_URI,
        "issuer": ISSUER,
        "use_discovery": False,
    }


@pytest.fixture
def github_provider() -> dict[str, Any]:
    """Plain OAuth2 provider."""
    return {
        "kind": "oauth2",
        "id": "github",
        "organization_id": "acme",
        "family": "custom",
        "client_id": "gh-client",
        "client_secret": "gh-secret",
        "authorization_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "user_info_url": "https://api.github.com/user",
        "scopes": ["read:user", "user:email"],
        "redirect_uri": "http://localhost:3000/auth/oauth2/callback/github",
    }


@pytest.fixture
def app_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[Config]:
    """Settings isolated from the environment and any .env file."""
    for name in (
        "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET"
    ):
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield Config(_env_file=None)
    get_config.cache_clear()


@pytest.fixture
def idp() -> Iterator[respx.MockRouter]:
    """Mocked identity provider; every outbound httpx call goes through it."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest_asyncio.fixture
async def service(app_config, clock, idp):
    async with OAuthService(app_config, clock=clock, monotonic_clock=clock) as svc:
        yield svc
