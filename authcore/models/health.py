"""Health check response model."""

from datetime import datetime

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """
    Response model for the health check endpoint.
    """

    status: str = Field(..., description="Status of the server")
    version: str = Field(..., description="Version of the server")
    timestamp: datetime = Field(..., description="Current server timestamp in ISO 8601 format")
    providers_configured: int = Field(..., description="Number of configured OAuth providers")
    pending_authorizations: int = Field(
        ..., description="Authorization requests awaiting their callback"
    )
