"""
Health and metrics endpoints.
No tenant identification required.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.dependencies import AppSettings, StorageService
from app.services.metrics import get_metrics_collector

router = APIRouter()


@router.get("/health")
async def health_check(settings: AppSettings, storage: StorageService):
    """
    Service health check endpoint.

    Returns:
        {"status": "ok", ...} with the deployment stage and cache size
    """
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tenants": len(storage.registry.tenant_ids()),
        "cachedProviders": len(storage.cache),
    }


@router.get("/metrics")
async def metrics():
    """
    Request counts, response times, error rates and per-tenant storage
    operation outcomes as JSON.
    """
    return get_metrics_collector().get_metrics()


@router.get("/metrics/prometheus", response_class=PlainTextResponse)
async def metrics_prometheus():
    """
    Prometheus text exposition format endpoint.
    Compatible with Prometheus scraping.
    """
    return PlainTextResponse(
        content=get_metrics_collector().to_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
