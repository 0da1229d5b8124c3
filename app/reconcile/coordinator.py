# app/reconcile/coordinator.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Sequence

from app.ious.errors import SettlementError, StorageError, ValidationError
from app.ious.lifecycle import ALREADY_SETTLED, LifecycleEngine, TransitionResult
from app.ious.model import IOU, SYNCED
from app.ious.validate import normalize_address
from app.settlement.base import SettlementClient, describe_iou
from services.metrics import increment_settlement_attempt
from settings import settings

logger = logging.getLogger("relief.reconcile")

FAILURE_POLICIES = ("keep_synced", "mark_failed", "revert_pending")


@dataclass(frozen=True)
class SettlementOutcome:
    iou_id: int
    settled: bool
    status: Optional[str]
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    retryable: Optional[bool] = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.iou_id, "settled": self.settled, "status": self.status}
        if self.tx_hash:
            out["txHash"] = self.tx_hash
        if self.error:
            out["error"] = self.error
            out["retryable"] = bool(self.retryable)
        return out


@dataclass
class BulkSyncResult:
    merchant: str
    synced: list[IOU] = field(default_factory=list)
    skipped: list[TransitionResult] = field(default_factory=list)
    settlements: list[SettlementOutcome] = field(default_factory=list)

    @property
    def synced_count(self) -> int:
        return len(self.synced)


def validate_iou_ids(iou_ids: Any) -> list[int]:
    """Non-empty list of ints; duplicates collapse, first occurrence wins."""
    if not isinstance(iou_ids, (list, tuple)) or not iou_ids:
        raise ValidationError("iouIds must be a non-empty list")
    seen: dict[int, None] = {}
    for raw in iou_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f"iouIds must contain integers, got {raw!r}")
        seen.setdefault(raw, None)
    return list(seen)


class BulkReconciliationCoordinator:
    """
    Reconciles offline IOUs to the chain in two phases.

    Phase one marks the merchant's pending IOUs synced; that set is fixed
    before any chain call, so a concurrent bulk sync cannot pick the same
    IOUs. Phase two relays each synced IOU independently; a failure is
    recorded on that IOU and never stops its siblings.

    Every IOU is relayed under a settlement lease (settling_until). Bulk sync
    takes it together with the pending -> synced move, the sweep takes it per
    IOU, so a sweep never relays an IOU whose settlement is still in flight.
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        client: SettlementClient,
        *,
        max_workers: int = 4,
        failure_policy: str = "keep_synced",
        max_attempts: int = 5,
        lease_seconds: float = 300,
    ):
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown settlement failure policy: {failure_policy}")
        self.engine = engine
        self.client = client
        self.max_workers = max(1, int(max_workers))
        self.failure_policy = failure_policy
        self.max_attempts = max(1, int(max_attempts))
        self.lease_seconds = max(1.0, float(lease_seconds))

    # ------------------------------------------------------------------
    # phase one
    # ------------------------------------------------------------------

    def mark(self, merchant_address: Any, iou_ids: Any, *, claim: bool = False) -> BulkSyncResult:
        """
        claim=True leases the synced IOUs to the caller, which must then settle
        them. Without it (client mode) the sweep may pick them up at any time.
        """
        merchant = normalize_address(merchant_address, field="merchantAddress")
        ids = validate_iou_ids(iou_ids)

        settling_until = self._lease_until() if claim else None
        result = BulkSyncResult(merchant=merchant)
        for iou_id in ids:
            transition = self.engine.mark_synced(iou_id, merchant, settling_until=settling_until)
            if transition.applied:
                result.synced.append(transition.iou)
            else:
                result.skipped.append(transition)

        logger.info(
            "bulk sync marked merchant=%s requested=%s synced=%s skipped=%s",
            merchant,
            len(ids),
            result.synced_count,
            len(result.skipped),
        )
        return result

    # ------------------------------------------------------------------
    # phase two
    # ------------------------------------------------------------------

    def settle(self, ious: Sequence[IOU]) -> list[SettlementOutcome]:
        """Relay IOUs the caller holds the lease on (see mark and settle_synced)."""
        if not ious:
            return []
        if self.max_workers == 1 or len(ious) == 1:
            return [self._settle_one(iou) for iou in ious]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ious))) as pool:
            futures = [pool.submit(self._settle_one, iou) for iou in ious]
            return [f.result() for f in futures]

    def bulk_sync(
        self,
        merchant_address: Any,
        iou_ids: Any,
        *,
        settle: bool = True,
        claim: Optional[bool] = None,
    ) -> BulkSyncResult:
        result = self.mark(merchant_address, iou_ids, claim=settle if claim is None else claim)
        if settle:
            result.settlements = self.settle(result.synced)
        return result

    def settle_synced(self, *, limit: Optional[int] = None) -> list[SettlementOutcome]:
        """Retry sweep over IOUs still waiting for confirmation."""
        candidates = self.engine.store.list_by_status(SYNCED, limit=limit)
        ious = []
        for candidate in candidates:
            claimed = self.engine.claim(candidate.id, self.lease_seconds)
            if claimed is not None:
                ious.append(claimed)
        if candidates:
            logger.info(
                "settlement sweep picked=%s in_flight=%s",
                len(ious),
                len(candidates) - len(ious),
            )
        return self.settle(ious)

    def confirm(self, iou_ids: Any, tx_hash: Any) -> list[TransitionResult]:
        """Record chain confirmations reported by a client that relayed itself."""
        ids = validate_iou_ids(iou_ids)
        if tx_hash is None or not str(tx_hash).strip():
            raise ValidationError("Missing required field: txHash")
        return [self.engine.mark_settled(iou_id, str(tx_hash)) for iou_id in ids]

    # ------------------------------------------------------------------

    def _settle_one(self, iou: IOU) -> SettlementOutcome:
        try:
            nonce = iou.nonce if iou.nonce is not None else self.client.get_nonce(iou.beneficiary)
            receipt = self.client.relay_spend(
                beneficiary=iou.beneficiary,
                merchant=iou.merchant,
                amount=iou.amount,
                description=describe_iou(iou.id),
                authorization=iou.signature,
                nonce=nonce,
            )
        except SettlementError as exc:
            return self._handle_failure(iou, exc)
        except StorageError:
            raise
        except Exception as exc:
            logger.exception("settlement client error iou=%s", iou.id)
            return self._handle_failure(iou, SettlementError(f"{type(exc).__name__}: {exc}", retryable=True))

        transition = self.engine.mark_settled(iou.id, receipt.tx_hash)
        settled = transition.applied or transition.reason == ALREADY_SETTLED
        current = transition.iou
        if settled:
            increment_settlement_attempt("settled")
            logger.info("iou settled id=%s tx=%s block=%s", iou.id, receipt.tx_hash, receipt.block_number)
        else:
            increment_settlement_attempt("unrecorded")
            logger.warning(
                "relay confirmed but iou not settled id=%s tx=%s reason=%s status=%s",
                iou.id,
                receipt.tx_hash,
                transition.reason,
                current.status if current is not None else None,
            )
        return SettlementOutcome(
            iou_id=iou.id,
            settled=settled,
            status=current.status if current is not None else None,
            tx_hash=current.tx_hash if current is not None else receipt.tx_hash,
        )

    def _lease_until(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=self.lease_seconds)

    def _handle_failure(self, iou: IOU, exc: SettlementError) -> SettlementOutcome:
        message = str(exc)
        increment_settlement_attempt("retryable_error" if exc.retryable else "rejected")
        logger.warning(
            "settlement failed id=%s retryable=%s policy=%s err=%s",
            iou.id,
            exc.retryable,
            self.failure_policy,
            message,
        )

        current = self.engine.record_failure(iou.id, message)

        if not exc.retryable:
            attempts = current.attempt_count if current is not None else iou.attempt_count + 1
            if self.failure_policy == "mark_failed":
                current = self.engine.mark_failed(iou.id, message).iou
            elif self.failure_policy == "revert_pending":
                current = self.engine.release(iou.id, message).iou
            elif attempts >= self.max_attempts:
                current = self.engine.mark_failed(iou.id, f"max settlement attempts exceeded: {message}").iou

        return SettlementOutcome(
            iou_id=iou.id,
            settled=False,
            status=current.status if current is not None else None,
            tx_hash=exc.tx_hash,
            error=message,
            retryable=exc.retryable,
        )


def build_coordinator(
    engine: LifecycleEngine,
    client: SettlementClient,
    *,
    overrides: Optional[dict[str, Any]] = None,
) -> BulkReconciliationCoordinator:
    opts: dict[str, Any] = {
        "max_workers": settings.SETTLEMENT_MAX_WORKERS,
        "failure_policy": settings.SETTLEMENT_FAILURE_POLICY,
        "max_attempts": settings.SETTLEMENT_MAX_ATTEMPTS,
        "lease_seconds": settings.SETTLEMENT_LEASE_SECONDS,
    }
    opts.update(overrides or {})
    return BulkReconciliationCoordinator(engine, client, **opts)


def outcome_dicts(outcomes: Iterable[SettlementOutcome]) -> list[dict[str, Any]]:
    return [o.as_dict() for o in outcomes]


def default_coordinator() -> BulkReconciliationCoordinator:
    from app.ious.factory import get_engine
    from app.settlement.factory import get_settlement_client

    return build_coordinator(get_engine(), get_settlement_client())
