"""Delta engine: safe differences between a begin and an end Snapshot.

Every published value must be >= 0.  Counters are supposed to move
forward only, but in practice they do not always:

  - the wall clock can be stepped backwards (NTP, manual change)
  - a process-stat counter can reset when a worker is recycled
  - a counter can wrap

A negative difference is never published.  It is logged at ERROR with
both raw values (so the operator can see which way it went) and clamped
to zero; the other quantities of the same request are unaffected.

If you see these errors with begin/end in the right order, the system's
clock or counters are broken, not this code.
"""

from __future__ import annotations

import logging

from accounting.core.metrics import ACCOUNTING_ANOMALIES, Metric
from accounting.models.snapshot import USEC_PER_SEC, Snapshot, TimeVal

logger = logging.getLogger(__name__)


def _label(metric: Metric | None) -> str:
    return metric.value if metric is not None else "unknown"


def time_delta(begin: TimeVal, end: TimeVal, metric: Metric | None = None) -> int:
    """Microseconds from `begin` to `end`, or 0 if `end` is earlier."""
    if end < begin:
        logger.error(
            "Timetraveling: begin(%s) end(%s) metric=%s",
            begin,
            end,
            _label(metric),
        )
        ACCOUNTING_ANOMALIES.labels(metric=_label(metric), kind="time").inc()
        return 0

    logger.debug("time_delta %s: begin=%s end=%s", _label(metric), begin, end)
    return (end.seconds - begin.seconds) * USEC_PER_SEC + (
        end.microseconds - begin.microseconds
    )


def block_delta(begin: int, end: int, metric: Metric | None = None) -> int:
    """Blocks counted between `begin` and `end`, or 0 if the counter went back."""
    if begin > end:
        logger.error(
            "Negative blockcount: begin(%d blocks) end(%d blocks) metric=%s",
            begin,
            end,
            _label(metric),
        )
        ACCOUNTING_ANOMALIES.labels(metric=_label(metric), kind="blocks").inc()
        return 0

    logger.debug("block_delta %s: begin=%d end=%d", _label(metric), begin, end)
    return end - begin


def compute_deltas(begin: Snapshot, end: Snapshot) -> dict[Metric, int]:
    """All nine published quantities, in Metric declaration order."""
    return {
        Metric.TIME: time_delta(begin.wall, end.wall, Metric.TIME),
        Metric.UTIME: time_delta(begin.own.utime, end.own.utime, Metric.UTIME),
        Metric.STIME: time_delta(begin.own.stime, end.own.stime, Metric.STIME),
        Metric.INBLOCK: block_delta(
            begin.own.inblock, end.own.inblock, Metric.INBLOCK
        ),
        Metric.OUBLOCK: block_delta(
            begin.own.oublock, end.own.oublock, Metric.OUBLOCK
        ),
        Metric.CUTIME: time_delta(
            begin.children.utime, end.children.utime, Metric.CUTIME
        ),
        Metric.CSTIME: time_delta(
            begin.children.stime, end.children.stime, Metric.CSTIME
        ),
        Metric.CINBLOCK: block_delta(
            begin.children.inblock, end.children.inblock, Metric.CINBLOCK
        ),
        Metric.COUBLOCK: block_delta(
            begin.children.oublock, end.children.oublock, Metric.COUBLOCK
        ),
    }
