from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from accounting.main import app
from accounting.models.snapshot import ResourceUsage, TimeVal
from accounting.services.accounting import Accountant, accountant
from accounting.services.system_probe import StaticProbe

# Ensure repo root is on sys.path so `import accounting` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_snapshot_registry() -> None:
    """Clear the process-wide begin-snapshot registry between tests."""
    accountant.store.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Probe / snapshot helpers
# ---------------------------------------------------------------------------


def usage(
    utime: tuple[int, int] = (0, 0),
    stime: tuple[int, int] = (0, 0),
    inblock: int = 0,
    oublock: int = 0,
) -> ResourceUsage:
    """Build a ResourceUsage from (seconds, microseconds) pairs."""
    return ResourceUsage(
        utime=TimeVal(*utime),
        stime=TimeVal(*stime),
        inblock=inblock,
        oublock=oublock,
    )


def scripted_accountant(
    wall: list | None = None,
    own: list | None = None,
    children: list | None = None,
    *,
    reap_children: bool = True,
) -> Accountant:
    """An Accountant whose probe returns the given readings in order."""
    probe = StaticProbe(wall=wall, own=own, children=children)
    return Accountant(probe, reap_children=reap_children)
