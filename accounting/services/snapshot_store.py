"""Snapshot store: exactly one begin Snapshot per request chain.

WHERE THE SNAPSHOT LIVES
--------------------------
The begin Snapshot belongs to the chain, and the chain is identified by
its canonical first node (see services/chain.py).  The store is a
registry keyed by that node:

    registry[first_node] = Snapshot(...)

It is a WeakKeyDictionary, so an entry disappears together with the
first node.  A chain the host abandons (client disconnect before the end
hook ran) does not leak its Snapshot.

WHY START IS IDEMPOTENT
-------------------------
The start hook can fire several times for one chain: once for the
original request and again for every internal redirect or sub-request
the server dispatches.  Only the FIRST call captures; later calls find
the entry and return without touching it.  Otherwise a redirect would
reset the clock and under-count the request.
"""

from __future__ import annotations

import logging
import weakref

from accounting.models.request_node import RequestNode
from accounting.models.snapshot import ResourceUsage, Snapshot, TimeVal
from accounting.services.chain import resolve_first
from accounting.services.system_probe import SystemProbe

logger = logging.getLogger(__name__)


def capture_snapshot(probe: SystemProbe, phase: str = "begin") -> Snapshot:
    """Read clock and usage counters; a failed read leaves that field at zero."""
    wall = TimeVal()
    own = ResourceUsage()
    children = ResourceUsage()

    try:
        wall = probe.wall_clock()
    except OSError as exc:
        logger.error("Request for (%s) time of day failed: %s", phase, exc)

    try:
        own = probe.usage_self()
    except OSError as exc:
        logger.error("Request for (%s) resource usage failed: %s", phase, exc)

    try:
        children = probe.usage_children()
    except OSError as exc:
        logger.error(
            "Request for children's (%s) resource usage failed: %s", phase, exc
        )

    snapshot = Snapshot(wall=wall, own=own, children=children)
    logger.debug("captured %s snapshot: %s", phase, snapshot)
    return snapshot


class SnapshotStore:
    """Per-process registry of begin Snapshots, keyed by first node."""

    def __init__(self, probe: SystemProbe) -> None:
        self.probe = probe
        self._snapshots: weakref.WeakKeyDictionary[RequestNode, Snapshot] = (
            weakref.WeakKeyDictionary()
        )

    def start(self, node: RequestNode) -> bool:
        """Capture the chain's begin Snapshot unless it already has one.

        Returns True if a Snapshot was stored, False if the chain had
        already started (an expected no-op).
        """
        first = resolve_first(node)
        if first in self._snapshots:
            return False

        self._snapshots[first] = capture_snapshot(self.probe, "begin")
        return True

    def fetch(self, node: RequestNode) -> Snapshot | None:
        """The chain's begin Snapshot, or None if the chain never started."""
        return self._snapshots.get(resolve_first(node))

    def discard(self, node: RequestNode) -> None:
        self._snapshots.pop(resolve_first(node), None)

    def __len__(self) -> int:
        return len(self._snapshots)

    def clear(self) -> None:
        """Drop every stored Snapshot (used by tests)."""
        self._snapshots.clear()
