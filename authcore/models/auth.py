"""Models exchanged between the authentication core and its callers."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from authcore.models.errors import ErrorCode


@dataclass
class AuthorizationRequest:
    """
    Server-held record of one login attempt, keyed by ``state``.

    Created when the authorization URL is built, marked ``consumed`` on
    first use and dropped on expiry. Never leaves the process.
    """

    state: str
    provider_id: str
    code_verifier: str
    code_challenge: str
    nonce: str | None
    created_at: float
    expires_at: float
    consumed: bool = False

    def is_expired(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at


class AuthorizationUrl(BaseModel):
    """Result of building an authorization URL."""

    url: str
    state: str
    nonce: str | None = None
    code_verifier: str = Field(..., description="PKCE verifier; keep server-side")


class TokenSet(BaseModel):
    """Tokens returned by the provider's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"
    scope: str | None = None


class ValidatedIdentity(BaseModel):
    """Canonical identity, independent of the provider family."""

    id: str = Field(..., description="Subject identifier, scoped to the provider")
    provider_id: str | None = None
    email: str | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    picture: str | None = None
    verified: bool | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None = None


class AuthResult(BaseModel):
    """Outcome of exchanging an authorization code."""

    success: bool
    user: ValidatedIdentity | None = None
    tokens: TokenSet | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    state: str | None = None


class IdTokenValidation(BaseModel):
    """Outcome of validating an ID token. ``reason`` is set whenever ``valid`` is False."""

    valid: bool
    payload: dict[str, Any] | None = None
    error: str | None = None
    reason: ErrorCode | None = None
    expires_at: datetime | None = None


class RefreshResult(BaseModel):
    success: bool
    tokens: TokenSet | None = None
    error: str | None = None
    error_code: ErrorCode | None = None


class RevokeResult(BaseModel):
    success: bool
    revoked: bool = Field(False, description="Whether a revocation request was actually sent")
    error: str | None = None
    error_code: ErrorCode | None = None


class ConnectionTestResult(BaseModel):
    success: bool
    error: str | None = None
    endpoints: dict[str, Any] | None = None


@dataclass
class AuthEvent:
    """Delivered to every registered listener after a code exchange."""

    type: Literal["authentication_success", "authentication_failure"]
    provider_id: str
    user: ValidatedIdentity | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    occurred_at: float = field(default_factory=time.time)
