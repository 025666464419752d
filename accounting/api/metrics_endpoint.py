"""Prometheus metrics endpoint.

Prometheus scrapes this every N seconds.  The accounting series look like:

  # TYPE request_resource_usage histogram
  request_resource_usage_bucket{le="1000.0",metric="ACC_utime"} 412.0
  request_resource_usage_sum{metric="ACC_time"} 8.1233e+06
  # TYPE accounting_anomalies_total counter
  accounting_anomalies_total{kind="time",metric="ACC_time"} 1.0

Useful queries:
  rate(request_resource_usage_sum{metric="ACC_utime"}[5m])
    / rate(request_resource_usage_count{metric="ACC_utime"}[5m])
  → average user CPU microseconds per request

/metrics itself is skipped by ResourceAccountingMiddleware so scrapes do
not show up as requests.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
