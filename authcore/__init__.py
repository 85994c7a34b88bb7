"""OAuth2 / OpenID Connect authentication core."""

__version__ = "0.1.0"
