"""ID token signature and claim verification."""

import json
import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from authlib.common.encoding import to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    DecodeError,
    ExpiredTokenError,
    JoseError,
    MissingClaimError,
    UnsupportedAlgorithmError,
)

from authcore.models.auth import IdTokenValidation
from authcore.models.errors import ErrorCode, NotFoundError, OAuthCoreError
from authcore.models.provider import (
    ALLOWED_SIGNING_ALGORITHMS,
    OAuth2ProviderConfig,
    OIDCProviderConfig,
)
from authcore.oauth.jwks import JWKSCache
from authcore.registry.provider_registry import ProviderRegistry
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

ESSENTIAL_CLAIMS = {
    "iss": {"essential": True},
    "sub": {"essential": True},
    "aud": {"essential": True},
    "exp": {"essential": True},
}

# JWK key type each JWS algorithm family verifies with.
KEY_TYPES_BY_ALG_PREFIX = {"RS": "RSA", "PS": "RSA", "ES": "EC"}

JOSE_ERROR_REASONS: dict[type[JoseError], ErrorCode] = {
    BadSignatureError: ErrorCode.BAD_SIGNATURE,
    ExpiredTokenError: ErrorCode.TOKEN_EXPIRED,
    MissingClaimError: ErrorCode.MISSING_CLAIM,
    UnsupportedAlgorithmError: ErrorCode.UNSUPPORTED_ALGORITHM,
    DecodeError: ErrorCode.INVALID_TOKEN,
}


class _Rejected(Exception):
    def __init__(self, reason: ErrorCode, error: str) -> None:
        self.reason = reason
        self.error = error
        super().__init__(error)


def read_unverified_header(token: str) -> dict[str, Any]:
    """Decodes the JOSE header of a compact JWS without checking the signature."""
    try:
        header_segment = token.split(".", 1)[0]
        header = json.loads(urlsafe_b64decode(to_bytes(header_segment)))
    except (ValueError, TypeError) as e:
        raise _Rejected(ErrorCode.INVALID_TOKEN, "Token header is not valid JSON") from e
    if not isinstance(header, dict):
        raise _Rejected(ErrorCode.INVALID_TOKEN, "Token header is not a JSON object")
    return header


class IdTokenValidator:
    """
    Verifies ID tokens issued by OIDC providers.

    Every failure is reported as an ``IdTokenValidation`` with a reason code;
    ``validate`` does not raise.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        jwks: JWKSCache,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._jwks = jwks
        self._clock = clock

    async def validate(
        self, provider_id: str, id_token: str, expected_nonce: str | None = None
    ) -> IdTokenValidation:
        try:
            payload = await self._verify(provider_id, id_token, expected_nonce)
        except _Rejected as e:
            logger.warning(
                "oauth_id_token_rejected",
                provider_id=provider_id,
                reason=e.reason.value,
                error=e.error,
            )
            return IdTokenValidation(valid=False, error=e.error, reason=e.reason)

        expires_at = datetime.fromtimestamp(payload["exp"], tz=UTC)
        logger.info("oauth_id_token_validated", provider_id=provider_id, sub=payload.get("sub"))
        return IdTokenValidation(valid=True, payload=payload, expires_at=expires_at)

    async def _verify(
        self, provider_id: str, id_token: str, expected_nonce: str | None
    ) -> dict[str, Any]:
        try:
            config = self._registry.resolve(provider_id)
        except NotFoundError as e:
            raise _Rejected(ErrorCode.NOT_FOUND, e.message) from e

        match config:
            case OIDCProviderConfig():
                pass
            case OAuth2ProviderConfig():
                raise _Rejected(ErrorCode.NOT_OIDC_PROVIDER, "Not an OIDC provider")

        header = read_unverified_header(id_token)
        algorithm = header.get("alg")
        if algorithm not in ALLOWED_SIGNING_ALGORITHMS or algorithm != config.id_token_signing_alg:
            raise _Rejected(
                ErrorCode.UNSUPPORTED_ALGORITHM,
                f"Token algorithm '{algorithm}' is not accepted for this provider",
            )
        kid = header.get("kid")
        if not kid:
            raise _Rejected(ErrorCode.MISSING_KID, "Token header has no 'kid'")

        # Fail closed: no key, no validation.
        try:
            key = await self._jwks.get_signing_key(provider_id, kid)
        except OAuthCoreError as e:
            raise _Rejected(e.code, e.message) from e

        expected_kty = KEY_TYPES_BY_ALG_PREFIX[config.id_token_signing_alg[:2]]
        if getattr(key, "kty", None) != expected_kty:
            raise _Rejected(
                ErrorCode.INVALID_TOKEN,
                f"Key '{kid}' cannot verify {config.id_token_signing_alg} signatures",
            )

        jwt = JsonWebToken([config.id_token_signing_alg])
        try:
            claims = jwt.decode(id_token, key, claims_options=ESSENTIAL_CLAIMS)
            claims.validate(now=int(self._clock()), leeway=config.clock_tolerance)
        except JoseError as e:
            reason = JOSE_ERROR_REASONS.get(type(e), ErrorCode.INVALID_TOKEN)
            raise _Rejected(reason, f"{e.error}: {e.description or ''}".rstrip(": ")) from e
        except (ValueError, KeyError, TypeError) as e:
            raise _Rejected(ErrorCode.INVALID_TOKEN, f"Token could not be verified: {e!r}") from e

        payload = dict(claims)
        self._check_issuer(config, payload)
        self._check_audience(config, payload)
        if expected_nonce is not None:
            self._check_nonce(payload, expected_nonce)
        return payload

    @staticmethod
    def _check_issuer(config: OIDCProviderConfig, payload: dict[str, Any]) -> None:
        if payload.get("iss") != config.issuer:
            raise _Rejected(ErrorCode.INVALID_ISSUER, f"Unexpected issuer '{payload.get('iss')}'")

    @staticmethod
    def _check_audience(config: OIDCProviderConfig, payload: dict[str, Any]) -> None:
        aud = payload.get("aud")
        audiences = aud if isinstance(aud, list) else [aud]
        if config.client_id not in audiences:
            raise _Rejected(ErrorCode.INVALID_AUDIENCE, "Token audience does not include client")
        azp = payload.get("azp")
        if azp is not None and azp != config.client_id:
            raise _Rejected(ErrorCode.INVALID_AUDIENCE, "Token authorized party is another client")

    @staticmethod
    def _check_nonce(payload: dict[str, Any], expected_nonce: str) -> None:
        nonce = payload.get("nonce")
        if not isinstance(nonce, str) or not secrets.compare_digest(
            nonce.encode(), expected_nonce.encode()
        ):
            raise _Rejected(ErrorCode.NONCE_MISMATCH, "Token nonce does not match the request")
