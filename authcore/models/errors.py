"""Error taxonomy for the authentication core."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Provider configuration & lookup
    CONFIGURATION_ERROR = "configuration_error"
    NOT_FOUND = "not_found"
    PROVIDER_DISABLED = "provider_disabled"

    # Transport & protocol
    NETWORK_ERROR = "network_error"
    PROTOCOL_ERROR = "protocol_error"
    RATE_LIMITED = "rate_limited"

    # Authorization request binding
    INVALID_STATE = "invalid_state"
    ACCESS_DENIED = "access_denied"

    # ID token validation reasons
    INVALID_TOKEN = "invalid_token"
    NOT_OIDC_PROVIDER = "not_oidc_provider"
    MISSING_KID = "missing_kid"
    KEY_NOT_FOUND = "key_not_found"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    BAD_SIGNATURE = "bad_signature"
    INVALID_ISSUER = "invalid_issuer"
    INVALID_AUDIENCE = "invalid_audience"
    TOKEN_EXPIRED = "token_expired"
    NONCE_MISMATCH = "nonce_mismatch"
    MISSING_CLAIM = "missing_claim"


class ErrorDetail(BaseModel):
    """OAuth-style error body returned by the HTTP surface."""

    error: ErrorCode = Field(..., description="Error code")
    error_description: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Additional error context")


class OAuthCoreError(Exception):
    """Base exception for the authentication core."""

    code: ErrorCode = ErrorCode.PROTOCOL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        self.message = message
        self.details = details
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(error=self.code, error_description=self.message, details=self.details)


class ConfigurationError(OAuthCoreError):
    """Missing or invalid provider configuration. Raised before any network call."""

    code = ErrorCode.CONFIGURATION_ERROR


class NotFoundError(OAuthCoreError):
    """Unknown provider id."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"OAuth2 provider '{provider_id}' not found", {"provider_id": provider_id})


class NetworkError(OAuthCoreError):
    """Timeout or connection failure talking to the identity provider."""

    code = ErrorCode.NETWORK_ERROR


class ProtocolError(OAuthCoreError):
    """Malformed or unexpected response from the identity provider."""

    code = ErrorCode.PROTOCOL_ERROR


class TokenValidationError(OAuthCoreError):
    """ID token signature or claim verification failed."""

    code = ErrorCode.INVALID_TOKEN


class KeyNotFoundError(TokenValidationError):
    """The token's key id is not in the provider's key set."""

    code = ErrorCode.KEY_NOT_FOUND


class RateLimitedError(OAuthCoreError):
    """An outbound JWKS fetch was throttled locally."""

    code = ErrorCode.RATE_LIMITED

    def __init__(self, message: str, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(message, {"retry_after": round(retry_after, 2)})


class InvalidStateError(OAuthCoreError):
    """The state value was never issued, already used, expired, or bound elsewhere."""

    code = ErrorCode.INVALID_STATE
