# backend/app/routes/v1/health.py
"""
Health check endpoints for monitoring and load balancer probes.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import os

from fastapi import APIRouter, Response

from app.core.config import settings
from app.core.constants import API_VERSION, BRAND_NAME
from app.schemas.health import HealthLiteResponse, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _resolve_git_sha() -> str:
    candidates = [
        os.getenv("RENDER_GIT_COMMIT"),
        os.getenv("GIT_SHA"),
        os.getenv("COMMIT_SHA"),
    ]
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return "unknown"


def _health_payload() -> HealthResponse:
    """Generate the standard health response payload."""
    return HealthResponse(
        status="healthy",
        service=f"{BRAND_NAME.lower()}-booking-core",
        version=API_VERSION,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        git_sha=_resolve_git_sha(),
    )


@router.get("", response_model=HealthResponse)
def health_check(response: Response) -> HealthResponse:
    """
    Health check endpoint.

    Returns basic health status including service info and environment.
    Used by load balancers and monitoring systems.
    """
    response.headers["X-Site-Mode"] = settings.site_mode
    response.headers["X-Commit-Sha"] = _resolve_git_sha()
    return _health_payload()


@router.get("/lite", response_model=HealthLiteResponse)
def health_check_lite() -> HealthLiteResponse:
    """Lightweight probe that never touches the database."""
    return HealthLiteResponse(status="ok")
