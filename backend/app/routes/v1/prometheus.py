"""
Prometheus metrics endpoint for monitoring infrastructure.

Public, following standard Prometheus practice. It exposes the timings
from @measure_operation and the payment, strike and webhook counters.
"""

from time import monotonic
from typing import Optional, Tuple

from fastapi import APIRouter, Response

from app.monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter()

_CACHE_TTL_SECONDS = 1.0
_metrics_cache: Optional[Tuple[float, bytes]] = None


def _get_cached_metrics_payload(*, force_refresh: bool = False) -> bytes:
    """Return the exposition payload, regenerated at most once per TTL."""
    global _metrics_cache

    now = monotonic()
    if not force_refresh and _metrics_cache is not None:
        cached_ts, cached_payload = _metrics_cache
        if now - cached_ts < _CACHE_TTL_SECONDS:
            return cached_payload

    payload = prometheus_metrics.get_metrics()
    _metrics_cache = (now, payload)
    return payload


@router.get("/prometheus", include_in_schema=False, response_class=Response, response_model=None)
async def get_prometheus_metrics() -> Response:
    """Expose Prometheus metrics for scraping (text exposition format)."""
    return Response(
        content=_get_cached_metrics_payload(),
        media_type=prometheus_metrics.get_content_type(),
        headers={"Cache-Control": "no-cache"},
    )
