"""OAuth2 / OpenID Connect client components."""
