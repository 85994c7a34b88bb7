from fastapi import Request

from authcore.oauth.service import OAuthService


def get_oauth_service(request: Request) -> OAuthService:
    """Returns the service created by the application lifespan."""
    return request.app.state.oauth_service
