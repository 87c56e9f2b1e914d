"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Response

from app.monitoring.registry import PROMETHEUS_CONTENT_TYPE, registry


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics() -> Response:
    """Expose hub counters for scraping."""

    return Response(content=registry.render(), media_type=PROMETHEUS_CONTENT_TYPE)
