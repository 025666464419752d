"""Accounting metric inventory.

Two kinds of "metric" live here, and they are deliberately kept in one
module so publisher and consumers agree on names:

1. `Metric` — the nine per-request quantities the accountant publishes on
   a request's notes.  The enum VALUE is the note key (the same ACC_* keys
   an access-log format would read), so consumers look them up with
   `node.notes[Metric.TIME]` instead of repeating string constants.

2. Prometheus collectors — process-wide aggregates fed from the published
   per-request values, plus counters for the anomalies the delta engine
   clamps away.

UNITS
------
Time quantities are MICROSECONDS (integer), block quantities are raw
block counts.  The histogram keeps those units instead of converting to
seconds because block counts have no seconds to convert to; the `metric`
label tells you which unit a series is in.
"""

from __future__ import annotations

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram


class Metric(str, Enum):
    """Per-request quantities published on the last node of a chain."""

    TIME = "ACC_time"
    UTIME = "ACC_utime"
    STIME = "ACC_stime"
    INBLOCK = "ACC_inblock"
    OUBLOCK = "ACC_oublock"
    CUTIME = "ACC_cutime"
    CSTIME = "ACC_cstime"
    CINBLOCK = "ACC_cinblock"
    COUBLOCK = "ACC_coublock"

    @property
    def is_time(self) -> bool:
        return self not in _BLOCK_METRICS

    @property
    def log_field(self) -> str:
        """Name used for this metric in structured log records (acc_time, ...)."""
        return self.value.lower()


_BLOCK_METRICS = frozenset(
    {Metric.INBLOCK, Metric.OUBLOCK, Metric.CINBLOCK, Metric.COUBLOCK}
)


# ---------------------------------------------------------------------------
# Prometheus collectors
# ---------------------------------------------------------------------------

RESOURCE_USAGE = Histogram(
    "request_resource_usage",
    "Per-request resource usage (microseconds for time, blocks for I/O)",
    ["metric"],
    # Spans 100µs .. 10s for time series; small block counts land in
    # the low buckets.
    buckets=[
        1,
        10,
        100,
        1_000,
        10_000,
        50_000,
        100_000,
        500_000,
        1_000_000,
        5_000_000,
        10_000_000,
    ],
)

ACCOUNTING_ANOMALIES = Counter(
    "accounting_anomalies_total",
    "Deltas clamped to zero because a counter or clock went backwards",
    ["metric", "kind"],  # kind: "time" or "blocks"
)

MISSING_SNAPSHOTS = Counter(
    "accounting_missing_snapshots_total",
    "Request chains that ended without a begin snapshot",
)

ACTIVE_CHAINS = Gauge(
    "accounting_active_chains",
    "Request chains with a begin snapshot that have not been stopped yet",
)
