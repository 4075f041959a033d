"""Health check response schemas."""

from ._strict_base import StrictModel


class HealthResponse(StrictModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: str
    git_sha: str


class HealthLiteResponse(StrictModel):
    status: str
