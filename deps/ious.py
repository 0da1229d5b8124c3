# deps/ious.py
from app.ious.factory import get_engine
from app.ious.lifecycle import LifecycleEngine
from app.reconcile.coordinator import BulkReconciliationCoordinator, default_coordinator


def engine_dep() -> LifecycleEngine:
    return get_engine()


def coordinator_dep() -> BulkReconciliationCoordinator:
    return default_coordinator()
