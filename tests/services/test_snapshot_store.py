from __future__ import annotations

import gc
import logging

import pytest

from accounting.models.request_node import RequestNode
from accounting.models.snapshot import ResourceUsage, Snapshot, TimeVal
from accounting.services.snapshot_store import SnapshotStore, capture_snapshot
from accounting.services.system_probe import StaticProbe
from tests.conftest import usage


def test_start_stores_snapshot_on_first_node() -> None:
    probe = StaticProbe(wall=[TimeVal(1000, 0)], own=[usage(inblock=3)])
    store = SnapshotStore(probe)
    node = RequestNode()

    assert store.start(node) is True
    assert store.fetch(node) == Snapshot(wall=TimeVal(1000, 0), own=usage(inblock=3))


def test_start_is_idempotent_within_a_chain() -> None:
    probe = StaticProbe(wall=[TimeVal(1, 0), TimeVal(2, 0)])
    store = SnapshotStore(probe)
    a = RequestNode(uri="/a")
    b = a.redirect("/b")

    assert store.start(a) is True
    assert store.start(b) is False
    assert store.start(a) is False

    assert len(store) == 1
    # The second reading was never taken.
    assert store.fetch(b).wall == TimeVal(1, 0)


def test_start_on_last_node_keys_snapshot_to_first() -> None:
    store = SnapshotStore(StaticProbe(wall=[TimeVal(7, 0)]))
    a = RequestNode(uri="/a")
    b = a.redirect("/b")
    c = b.redirect("/c")

    store.start(c)

    assert store.fetch(a) is store.fetch(c)
    assert store.fetch(a).wall == TimeVal(7, 0)


def test_subrequest_start_joins_outer_chain() -> None:
    store = SnapshotStore(StaticProbe())
    a = RequestNode()
    store.start(a)
    assert store.start(a.subrequest("/sub")) is False
    assert len(store) == 1


def test_independent_chains_get_independent_snapshots() -> None:
    probe = StaticProbe(wall=[TimeVal(1, 0), TimeVal(5, 0)])
    store = SnapshotStore(probe)
    x, y = RequestNode(uri="/x"), RequestNode(uri="/y")

    store.start(x)
    store.start(y)

    assert store.fetch(x).wall == TimeVal(1, 0)
    assert store.fetch(y).wall == TimeVal(5, 0)


def test_fetch_unknown_chain_returns_none() -> None:
    store = SnapshotStore(StaticProbe())
    assert store.fetch(RequestNode()) is None


def test_discard_removes_chain_entry() -> None:
    store = SnapshotStore(StaticProbe())
    a = RequestNode()
    b = a.redirect("/b")
    store.start(a)
    store.discard(b)
    assert store.fetch(a) is None
    # discarding twice is harmless
    store.discard(a)


def test_entry_disappears_with_first_node() -> None:
    store = SnapshotStore(StaticProbe())
    node = RequestNode()
    store.start(node)
    assert len(store) == 1

    del node
    gc.collect()

    assert len(store) == 0


# ---- capture_snapshot ----


def test_capture_snapshot_reads_every_counter() -> None:
    probe = StaticProbe(
        wall=[TimeVal(12, 34)],
        own=[usage(utime=(1, 2), stime=(3, 4), inblock=5, oublock=6)],
        children=[usage(utime=(7, 8), inblock=9)],
    )
    snap = capture_snapshot(probe)
    assert snap.wall == TimeVal(12, 34)
    assert snap.own.stime == TimeVal(3, 4)
    assert snap.children.inblock == 9


def test_capture_snapshot_failed_reads_stay_zero(
    caplog: pytest.LogCaptureFixture,
) -> None:
    probe = StaticProbe(
        wall=[OSError("clock unavailable")],
        own=[usage(inblock=4)],
        children=[OSError("getrusage failed")],
    )

    with caplog.at_level(logging.ERROR, logger="accounting.services.snapshot_store"):
        snap = capture_snapshot(probe, "begin")

    assert snap.wall == TimeVal()
    assert snap.own.inblock == 4
    assert snap.children == ResourceUsage()
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert len(messages) == 2
    assert "(begin) time of day failed" in messages[0]
    assert "children's (begin) resource usage failed" in messages[1]
