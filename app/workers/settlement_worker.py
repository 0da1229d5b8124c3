# app/workers/settlement_worker.py
from __future__ import annotations

import logging
import time
from typing import Optional

from app.reconcile.coordinator import BulkReconciliationCoordinator, default_coordinator
from settings import settings

logger = logging.getLogger("relief.worker")


def process_once(
    *,
    batch_size: Optional[int] = None,
    coordinator: Optional[BulkReconciliationCoordinator] = None,
) -> int:
    """
    Settle up to batch_size IOUs that are still synced (timed out, rejected
    under keep_synced, or left by an interrupted bulk sync).
    Returns how many IOUs were attempted.
    """
    coordinator = coordinator or default_coordinator()
    limit = batch_size or settings.SWEEP_BATCH_SIZE

    outcomes = coordinator.settle_synced(limit=limit)
    settled = sum(1 for o in outcomes if o.settled)
    failed = sum(1 for o in outcomes if not o.settled)
    if outcomes:
        logger.info("sweep processed=%s settled=%s unsettled=%s", len(outcomes), settled, failed)
    return len(outcomes)


def require_shared_store() -> None:
    """
    A sweep in its own process only sees IOUs through a shared backend;
    the memory store would be a private, always-empty copy.
    """
    if settings.IOU_STORE_BACKEND != "postgres":
        raise RuntimeError(
            f"Settlement sweep needs IOU_STORE_BACKEND=postgres, got {settings.IOU_STORE_BACKEND!r}"
        )


def run_forever(*, poll_seconds: Optional[int] = None, batch_size: Optional[int] = None) -> None:
    require_shared_store()
    poll = poll_seconds or settings.SWEEP_POLL_SECONDS
    logger.info("settlement worker started poll_seconds=%s", poll)
    while True:
        n = process_once(batch_size=batch_size)
        if n == 0:
            time.sleep(poll)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_forever()
