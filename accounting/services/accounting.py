"""The accountant: begin/end hooks that tie chain, store and deltas together.

LIFECYCLE
----------
  start_accounting(node)   — called when a request (or a redirect of it)
                             enters the server.  Stores the begin
                             Snapshot on the chain's first node, once.

  stop_accounting(node)    — called when the transaction is about to be
                             logged.  Takes the end Snapshot, computes the
                             deltas and publishes them on the chain's LAST
                             node, where the access log reads them.

    first                                last
      A ───────next───────▶ B ───next───▶ C
      │                                   │
      begin Snapshot                      notes["ACC_time"] = "2250000"
                                          notes["ACC_utime"] = "400000"
                                          ...

NOTHING HERE FAILS A REQUEST
------------------------------
Every problem (a missing begin Snapshot, a failed getrusage, a clock
that went backwards) is logged and degrades to "no metrics" or "0".
Accounting is an observer; it must never take a request down with it.
"""

from __future__ import annotations

import logging

from accounting.core.config import SETTINGS
from accounting.core.metrics import ACTIVE_CHAINS, MISSING_SNAPSHOTS, Metric
from accounting.models.request_node import RequestNode
from accounting.models.snapshot import Snapshot
from accounting.services.chain import resolve_first, resolve_last
from accounting.services.deltas import compute_deltas
from accounting.services.snapshot_store import SnapshotStore, capture_snapshot
from accounting.services.system_probe import OSProbe, SystemProbe

logger = logging.getLogger(__name__)


class Accountant:
    def __init__(
        self,
        probe: SystemProbe | None = None,
        *,
        reap_children: bool = True,
    ) -> None:
        self.probe: SystemProbe = probe if probe is not None else OSProbe()
        self.store = SnapshotStore(self.probe)
        self.reap_children = reap_children

    def start_accounting(self, node: RequestNode) -> bool:
        """Begin hook.  Returns False when the chain was already started."""
        started = self.store.start(node)
        if not started:
            logger.debug("accounting already started for %s", node.uri)
        return started

    def fetch_snapshot(self, node: RequestNode) -> Snapshot | None:
        return self.store.fetch(node)

    def stop_accounting(self, node: RequestNode) -> dict[Metric, str]:
        """End hook.  Returns what was published (empty if nothing was)."""
        first = resolve_first(node)
        last = resolve_last(node)

        begin = self.fetch_snapshot(first)
        if begin is None:
            logger.error(
                "No accounting snapshot for request chain %s %s",
                first.method,
                first.uri,
            )
            MISSING_SNAPSHOTS.inc()
            return {}

        if self.reap_children:
            try:
                self.probe.reap_children()
            except OSError as exc:
                logger.warning("Reaping finished children failed: %s", exc)

        end = capture_snapshot(self.probe, "end")

        published: dict[Metric, str] = {}
        for metric, value in compute_deltas(begin, end).items():
            published[metric] = str(value)
            last.notes[metric.value] = published[metric]

        self.store.discard(first)
        return published


# Module-level singleton: the hooks of a process share one registry.
accountant = Accountant(reap_children=SETTINGS.accounting_reap_children)

# Read the registry size at scrape time; entries also vanish when a first
# node is garbage-collected, which inc/dec bookkeeping would miss.
ACTIVE_CHAINS.set_function(lambda: len(accountant.store))
