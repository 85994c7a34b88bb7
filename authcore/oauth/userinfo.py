"""Maps provider-specific user claims to a canonical identity."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from authcore.models.auth import ValidatedIdentity
from authcore.models.errors import ProtocolError
from authcore.models.provider import ProviderFamily

# Canonical field -> candidate claim names, first non-empty wins.
ClaimMapping = dict[str, tuple[str, ...]]

GENERIC_MAPPING: ClaimMapping = {
    "id": ("sub", "id"),
    "email": ("email",),
    "name": ("name", "display_name"),
    "first_name": ("given_name", "first_name"),
    "last_name": ("family_name", "last_name"),
    "picture": ("picture", "avatar_url"),
    "verified": ("email_verified",),
}

# Standard OIDC claims as found in an ID token.
ID_TOKEN_MAPPING: ClaimMapping = {
    "id": ("sub",),
    "email": ("email",),
    "name": ("name",),
    "first_name": ("given_name",),
    "last_name": ("family_name",),
    "picture": ("picture",),
    "verified": ("email_verified",),
}

CLAIM_MAPPINGS: dict[ProviderFamily, ClaimMapping] = {
    ProviderFamily.GOOGLE: {
        "id": ("id", "sub"),
        "email": ("email",),
        "name": ("name",),
        "first_name": ("given_name",),
        "last_name": ("family_name",),
        "picture": ("picture",),
        "verified": ("verified_email", "email_verified"),
    },
    # Microsoft Graph /me
    ProviderFamily.MICROSOFT: {
        "id": ("id", "oid", "sub"),
        "email": ("mail", "userPrincipalName", "email"),
        "name": ("displayName", "name"),
        "first_name": ("givenName",),
        "last_name": ("surname",),
    },
}


def _first(claims: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        value = claims.get(name)
        if value not in (None, ""):
            return value
    return None


def _as_bool(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _apply(
    mapping: ClaimMapping,
    claims: Mapping[str, Any],
    provider_id: str | None,
    expires_at: datetime | None,
) -> ValidatedIdentity:
    subject = _first(claims, mapping["id"])
    if subject is None:
        raise ProtocolError("User claims carry no subject identifier", {"provider_id": provider_id})

    def text(field: str) -> str | None:
        value = _first(claims, mapping.get(field, ()))
        return None if value is None else str(value)

    return ValidatedIdentity(
        id=str(subject),
        provider_id=provider_id,
        email=text("email"),
        name=text("name"),
        first_name=text("first_name"),
        last_name=text("last_name"),
        picture=text("picture"),
        verified=_as_bool(_first(claims, mapping.get("verified", ()))),
        attributes=dict(claims),
        expires_at=expires_at,
    )


def normalize(
    family: ProviderFamily,
    raw_claims: Mapping[str, Any],
    provider_id: str | None = None,
    expires_at: datetime | None = None,
) -> ValidatedIdentity:
    """Normalizes a user-info response. The full claim set is kept in ``attributes``."""
    return _apply(CLAIM_MAPPINGS.get(family, GENERIC_MAPPING), raw_claims, provider_id, expires_at)


def identity_from_id_token(
    payload: Mapping[str, Any],
    provider_id: str | None = None,
    expires_at: datetime | None = None,
) -> ValidatedIdentity:
    return _apply(ID_TOKEN_MAPPING, payload, provider_id, expires_at)
