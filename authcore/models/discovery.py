"""OpenID Connect discovery document model."""

import time
from typing import Any

from pydantic import BaseModel, Field

# Discovery field -> provider config field it overrides.
ENDPOINT_FIELDS: dict[str, str] = {
    "authorization_endpoint": "authorization_url",
    "token_endpoint": "token_url",
    "userinfo_endpoint": "user_info_url",
    "jwks_uri": "jwks_url",
    "end_session_endpoint": "end_session_endpoint",
}

DISCOVERY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "issuer": {"type": "string"},
        "authorization_endpoint": {"type": "string", "minLength": 1},
        "token_endpoint": {"type": "string", "minLength": 1},
        "userinfo_endpoint": {"type": "string", "minLength": 1},
        "jwks_uri": {"type": "string", "minLength": 1},
        "end_session_endpoint": {"type": "string", "minLength": 1},
        "revocation_endpoint": {"type": "string", "minLength": 1},
    },
}


class DiscoveryDocument(BaseModel):
    """A fetched discovery document and its freshness window."""

    provider_id: str
    fetched_at: float
    stale_at: float
    raw: dict[str, Any] = Field(default_factory=dict)

    def is_stale(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.stale_at

    @property
    def issuer(self) -> str | None:
        return self.raw.get("issuer")

    @property
    def revocation_endpoint(self) -> str | None:
        return self.raw.get("revocation_endpoint") or None

    def endpoint_overrides(self) -> dict[str, str]:
        """Provider config fields this document supplies; absent ones are left out."""
        return {
            config_field: self.raw[doc_field]
            for doc_field, config_field in ENDPOINT_FIELDS.items()
            if self.raw.get(doc_field)
        }
