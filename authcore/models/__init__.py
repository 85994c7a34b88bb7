"""Data models for the authentication core."""

from authcore.models.auth import (
    AuthEvent,
    AuthorizationRequest,
    AuthorizationUrl,
    AuthResult,
    ConnectionTestResult,
    IdTokenValidation,
    RefreshResult,
    RevokeResult,
    TokenSet,
    ValidatedIdentity,
)
from authcore.models.discovery import DiscoveryDocument
from authcore.models.errors import (
    ConfigurationError,
    ErrorCode,
    ErrorDetail,
    InvalidStateError,
    KeyNotFoundError,
    NetworkError,
    NotFoundError,
    OAuthCoreError,
    ProtocolError,
    RateLimitedError,
    TokenValidationError,
)
from authcore.models.provider import (
    OAuth2ProviderConfig,
    OIDCProviderConfig,
    ProviderConfig,
    ProviderFamily,
)

__all__ = [
    "AuthEvent",
    "AuthorizationRequest",
    "AuthorizationUrl",
    "AuthResult",
    "ConfigurationError",
    "ConnectionTestResult",
    "DiscoveryDocument",
    "ErrorCode",
    "ErrorDetail",
    "IdTokenValidation",
    "InvalidStateError",
    "KeyNotFoundError",
    "NetworkError",
    "NotFoundError",
    "OAuth2ProviderConfig",
    "OAuthCoreError",
    "OIDCProviderConfig",
    "ProtocolError",
    "ProviderConfig",
    "ProviderFamily",
    "RateLimitedError",
    "RefreshResult",
    "RevokeResult",
    "TokenSet",
    "TokenValidationError",
    "ValidatedIdentity",
]
