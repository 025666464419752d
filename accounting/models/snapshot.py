from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

USEC_PER_SEC = 1_000_000


class TimeVal(NamedTuple):
    """A point in time (or a CPU-time total) as whole seconds + microseconds.

    Tuple ordering is lexicographic: seconds first, microseconds as the
    tiebreak, which is exactly the ordering the delta engine checks.
    """

    seconds: int = 0
    microseconds: int = 0

    @classmethod
    def from_seconds(cls, value: float) -> TimeVal:
        sec, usec = divmod(round(value * USEC_PER_SEC), USEC_PER_SEC)
        return cls(int(sec), int(usec))

    @classmethod
    def from_ns(cls, value: int) -> TimeVal:
        sec, usec = divmod(value // 1000, USEC_PER_SEC)
        return cls(sec, usec)

    def __str__(self) -> str:
        return f"{self.seconds}.{self.microseconds:06d}sec."


@dataclass(frozen=True, slots=True)
class ResourceUsage:
    """Accumulated usage counters for one process (or its reaped children).

    utime:   CPU time spent in user mode
    stime:   CPU time spent in kernel mode
    inblock: filesystem blocks read
    oublock: filesystem blocks written
    """

    utime: TimeVal = TimeVal()
    stime: TimeVal = TimeVal()
    inblock: int = 0
    oublock: int = 0


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Timing and usage counters captured at one instant.

    One Snapshot is taken when a request chain starts; a second one is
    taken when it ends, and the metrics are the differences.
    """

    wall: TimeVal = TimeVal()
    own: ResourceUsage = ResourceUsage()
    children: ResourceUsage = ResourceUsage()
