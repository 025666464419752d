"""Health and readiness endpoints.

LIVENESS vs READINESS
-----------------------
  /health (liveness):  "Is this process alive?"  Restart if not.
  /ready  (readiness): "Can it take traffic right now?"  Route away if not.

HEALTH RESPONSE STRUCTURE
---------------------------
  status:     overall health ("ok" or "degraded")
  accounting: whether request accounting is on, how many chains are in
              flight, and how often it had to degrade (missing begin
              snapshots, clamped deltas) since the process started

STATUS RULE
-------------
  status is "degraded" once any delta (time OR blocks) has been clamped
  since the process started, and "ok" otherwise.  The anomaly counters
  never go down, so neither does the status: a clock or counter that
  went backwards once stays visible until the process restarts.

A degraded process still answers 200.  It is a metrics problem, not a
reason to get restarted by the orchestrator.
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import REGISTRY

from accounting.core.config import SETTINGS
from accounting.services.accounting import accountant

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum all sample values for a counter across all label combinations.

    Example: _sum_counter("accounting_anomalies_total", {"kind": "time"})
    sums clamped time deltas regardless of which metric they hit.
    """
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


@router.get("/health")
async def health() -> dict:
    """Liveness probe + accounting status.

    Returns 200 even when degraded.  STATUS is "degraded" when any time or
    block delta has been clamped since startup (see STATUS RULE above).
    """
    missing = int(_sum_counter("accounting_missing_snapshots_total"))
    anomalies = {
        kind: int(_sum_counter("accounting_anomalies_total", {"kind": kind}))
        for kind in ("time", "blocks")
    }
    overall = "degraded" if any(anomalies.values()) else "ok"

    return {
        "status": overall,
        "accounting": {
            "enabled": SETTINGS.accounting_enabled,
            "active_chains": len(accountant.store),
            "missing_snapshots": missing,
            "anomalies": anomalies,
        },
    }


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: the service has no backing stores to wait for."""
    return Response(status_code=200)
