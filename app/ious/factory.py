# app/ious/factory.py
from __future__ import annotations

from typing import Optional

from app.ious.store import IOUStore, MemoryIOUStore
from settings import settings

_STORE: Optional[IOUStore] = None


def get_store() -> IOUStore:
    global _STORE
    if _STORE is not None:
        return _STORE

    backend = (settings.IOU_STORE_BACKEND or "memory").strip().lower()
    if backend == "postgres":
        from app.ious.repository import PostgresIOUStore
        _STORE = PostgresIOUStore()
    elif backend == "memory":
        _STORE = MemoryIOUStore()
    else:
        raise RuntimeError(f"Unknown IOU_STORE_BACKEND={backend!r}. Allowed: memory, postgres")
    return _STORE


def set_store(store: Optional[IOUStore]) -> None:
    """Swap the process-wide store (tests, scripts). None resets to settings."""
    global _STORE
    _STORE = store


def get_engine():
    from app.ious.lifecycle import LifecycleEngine

    return LifecycleEngine(get_store())
