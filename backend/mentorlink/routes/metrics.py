# backend/mentorlink/routes/metrics.py
"""
Prometheus metrics endpoint.

Public, following standard Prometheus practice. Exposes the service
operation histograms recorded by ``@measure_operation`` and the realtime
gauges and counters.
"""

from fastapi import APIRouter, Response

from ..monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["monitoring"])


@router.get("/metrics", include_in_schema=False)
def get_prometheus_metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
