"""Access to the operating system's clock and resource-usage counters.

The accountant never calls `time` or `resource` directly; it asks a
SystemProbe.  Production code uses OSProbe.  Tests use StaticProbe,
which returns whatever readings the test scripted, so "the clock went
backwards" or "getrusage failed" can be reproduced on demand.

WHAT getrusage REPORTS
------------------------
  RUSAGE_SELF      — totals for this process since it started
  RUSAGE_CHILDREN  — totals for child processes that have TERMINATED and
                     been waited for.  A CGI script that exited but was
                     not reaped yet is not in here, which is why the
                     accountant reaps finished children before sampling.

Both are process-wide.  Under concurrent load, the delta attributed to a
request includes work other requests did in the same process meanwhile.

REAPING TAKES EVERY EXITED CHILD
----------------------------------
reap_children() calls waitpid(-1, WNOHANG), which collects ANY exited
child of the process, including ones a subprocess.Popen object or an
asyncio child watcher is still waiting on.  Those callers then see
the child as already gone and lose or misreport its return code.  An
app that spawns subprocesses itself should set
ACCOUNTING_REAP_CHILDREN=false; child CPU and I/O then only shows up
once its owner has waited for it.
"""

from __future__ import annotations

import os
import resource
import time
from collections import deque
from typing import Protocol, runtime_checkable

from accounting.models.snapshot import ResourceUsage, TimeVal


@runtime_checkable
class SystemProbe(Protocol):
    def wall_clock(self) -> TimeVal: ...
    def usage_self(self) -> ResourceUsage: ...
    def usage_children(self) -> ResourceUsage: ...
    def reap_children(self) -> int: ...


def _usage_from_rusage(ru: resource.struct_rusage) -> ResourceUsage:
    return ResourceUsage(
        utime=TimeVal.from_seconds(ru.ru_utime),
        stime=TimeVal.from_seconds(ru.ru_stime),
        inblock=ru.ru_inblock,
        oublock=ru.ru_oublock,
    )


class OSProbe:
    """Probe backed by the real clock, getrusage() and waitpid()."""

    def wall_clock(self) -> TimeVal:
        return TimeVal.from_ns(time.time_ns())

    def usage_self(self) -> ResourceUsage:
        return _usage_from_rusage(resource.getrusage(resource.RUSAGE_SELF))

    def usage_children(self) -> ResourceUsage:
        return _usage_from_rusage(resource.getrusage(resource.RUSAGE_CHILDREN))

    def reap_children(self) -> int:
        """Wait for every child that has already exited, without blocking.

        Returns the number of children reaped.  Stops at the first
        "nobody has exited" answer (pid 0) or when there are no children
        at all (ChildProcessError).
        """
        reaped = 0
        while True:
            try:
                pid, _status = os.waitpid(-1, os.WNOHANG)
            except ChildProcessError:
                break
            if pid == 0:
                break
            reaped += 1
        return reaped


class StaticProbe:
    """In-memory probe for tests — readings are scripted up front.

    Each reading method pops the next queued value; when a queue runs dry
    the last value is repeated.  Queue an exception instance to make that
    reading fail.
    """

    def __init__(
        self,
        wall: list[TimeVal | Exception] | None = None,
        own: list[ResourceUsage | Exception] | None = None,
        children: list[ResourceUsage | Exception] | None = None,
    ) -> None:
        self._wall = deque(wall or [TimeVal()])
        self._own = deque(own or [ResourceUsage()])
        self._children = deque(children or [ResourceUsage()])
        self.reap_calls = 0

    @staticmethod
    def _next(queue: deque):
        value = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(value, Exception):
            raise value
        return value

    def wall_clock(self) -> TimeVal:
        return self._next(self._wall)

    def usage_self(self) -> ResourceUsage:
        return self._next(self._own)

    def usage_children(self) -> ResourceUsage:
        return self._next(self._children)

    def reap_children(self) -> int:
        self.reap_calls += 1
        return 0
