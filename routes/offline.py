# routes/offline.py
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from app.ious.errors import NotFoundError
from app.ious.lifecycle import LifecycleEngine
from app.ious.views import merchant_summary, system_summary
from app.reconcile.coordinator import BulkReconciliationCoordinator, outcome_dicts
from deps.admin import require_admin
from deps.ious import coordinator_dep, engine_dep
from schemas import (
    BulkSyncRequest,
    CreateIOURequest,
    IOUCreatedResponse,
    MarkSettledRequest,
    MessageResponse,
    SettlePendingRequest,
)
from settings import settings

router = APIRouter(prefix="/api/offline", tags=["offline"])
logger = logging.getLogger("relief.ious.http")


@router.post("/create-iou", response_model=IOUCreatedResponse)
def create_iou(body: CreateIOURequest, engine: LifecycleEngine = Depends(engine_dep)):
    iou = engine.create(
        beneficiary=body.beneficiary,
        merchant=body.merchant,
        amount=body.amount,
        signature=body.signature,
        timestamp=body.timestamp,
        nonce=body.nonce,
    )
    return {"success": True, "iou": {"id": iou.id, "status": iou.status}}


@router.get("/merchant/{address}/ious")
def list_merchant_ious(address: str, engine: LifecycleEngine = Depends(engine_dep)):
    ious = engine.store.list_by_merchant(address)
    return {
        "success": True,
        "ious": [iou.as_dict() for iou in ious],
        "summary": merchant_summary(ious),
    }


@router.get("/all-ious", dependencies=[Depends(require_admin)])
def list_all_ious(engine: LifecycleEngine = Depends(engine_dep)):
    ious = engine.store.list_all()
    return {
        "success": True,
        "ious": [iou.as_dict() for iou in ious],
        "summary": system_summary(ious),
    }


@router.get("/iou/{iou_id}")
def get_iou(iou_id: int, engine: LifecycleEngine = Depends(engine_dep)):
    iou = engine.store.get(iou_id)
    if iou is None:
        raise NotFoundError(iou_id)
    return {"success": True, "iou": iou.as_dict()}


@router.post("/bulk-sync")
def bulk_sync(
    body: BulkSyncRequest,
    background: BackgroundTasks,
    coordinator: BulkReconciliationCoordinator = Depends(coordinator_dep),
):
    mode = settings.BULK_SYNC_MODE
    result = coordinator.bulk_sync(
        body.merchant_address,
        body.iou_ids,
        settle=(mode == "inline"),
        claim=(mode != "client"),
    )

    if mode == "background" and result.synced:
        background.add_task(coordinator.settle, list(result.synced))

    return {
        "success": True,
        "mode": mode,
        "syncedCount": result.synced_count,
        "ious": [iou.as_dict() for iou in result.synced],
        "skipped": [t.skip_dict() for t in result.skipped],
        "settlements": outcome_dicts(result.settlements),
    }


@router.post("/mark-settled")
def mark_settled(
    body: MarkSettledRequest,
    coordinator: BulkReconciliationCoordinator = Depends(coordinator_dep),
):
    transitions = coordinator.confirm(body.iou_ids, body.tx_hash)
    settled = [t for t in transitions if t.applied]
    return {
        "success": True,
        "settledCount": len(settled),
        "skipped": [t.skip_dict() for t in transitions if not t.applied],
    }


@router.post("/settle-pending", dependencies=[Depends(require_admin)])
def settle_pending(
    body: SettlePendingRequest | None = None,
    coordinator: BulkReconciliationCoordinator = Depends(coordinator_dep),
):
    limit = body.limit if body is not None and body.limit is not None else settings.SWEEP_BATCH_SIZE
    outcomes = coordinator.settle_synced(limit=limit)
    return {
        "success": True,
        "processed": len(outcomes),
        "settlements": outcome_dicts(outcomes),
    }


@router.delete("/iou/{iou_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_iou(iou_id: int, engine: LifecycleEngine = Depends(engine_dep)):
    if not engine.store.delete(iou_id):
        raise NotFoundError(iou_id)
    logger.info("iou deleted id=%s", iou_id)
    return {"success": True, "message": "IOU deleted"}
