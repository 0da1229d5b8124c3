# tests/conftest.py
from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.ious.factory import set_store
from app.ious.lifecycle import LifecycleEngine
from app.ious.model import IOU
from app.ious.store import MemoryIOUStore
from app.reconcile.coordinator import BulkReconciliationCoordinator
from app.settlement.factory import set_settlement_client
from app.settlement.sandbox import SandboxSettlementClient
from main import create_app

BENEFICIARY = "0x" + "a1" * 20
OTHER_BENEFICIARY = "0x" + "a2" * 20
MERCHANT = "0x" + "b1" * 20
OTHER_MERCHANT = "0x" + "c1" * 20
ADMIN_KEY = "pytest-admin-key"


# ---------------------------
# Process-wide state
# ---------------------------

@pytest.fixture(autouse=True)
def _fresh_state():
    """Every test gets an empty store and a scripted sandbox chain."""
    store = MemoryIOUStore()
    sandbox = SandboxSettlementClient()
    set_store(store)
    set_settlement_client(sandbox)
    yield store, sandbox
    set_store(None)
    set_settlement_client(None)


@pytest.fixture()
def store(_fresh_state) -> MemoryIOUStore:
    return _fresh_state[0]


@pytest.fixture()
def sandbox(_fresh_state) -> SandboxSettlementClient:
    return _fresh_state[1]


@pytest.fixture()
def engine(store: MemoryIOUStore) -> LifecycleEngine:
    return LifecycleEngine(store)


@pytest.fixture()
def coordinator(engine: LifecycleEngine, sandbox: SandboxSettlementClient) -> BulkReconciliationCoordinator:
    return BulkReconciliationCoordinator(engine, sandbox, max_workers=1)


@pytest.fixture()
def client() -> TestClient:
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(create_app(), raise_server_exceptions=False)


def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY}


def make_iou(engine: LifecycleEngine, **overrides: Any) -> IOU:
    payload = {
        "beneficiary": BENEFICIARY,
        "merchant": MERCHANT,
        "amount": "10",
        "signature": "0xsig",
    }
    payload.update(overrides)
    return engine.create(**payload)
