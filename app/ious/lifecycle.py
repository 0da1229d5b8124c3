# app/ious/lifecycle.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from app.ious.errors import ValidationError
from app.ious.model import FAILED, IOU, PENDING, SETTLED, SYNCED
from app.ious.store import IOUStore
from services.metrics import increment_iou_created, increment_iou_transition

logger = logging.getLogger("relief.ious")

# skip reasons reported back to callers of bulk operations
NOT_FOUND = "not_found"
MERCHANT_MISMATCH = "merchant_mismatch"
NOT_PENDING = "not_pending"
NOT_SYNCED = "not_synced"
ALREADY_SETTLED = "already_settled"
TERMINAL = "terminal"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransitionResult:
    iou_id: int
    iou: Optional[IOU]
    applied: bool
    reason: Optional[str] = None

    def skip_dict(self) -> dict[str, Any]:
        return {"id": self.iou_id, "reason": self.reason}


class LifecycleEngine:
    """
    Owns IOU status changes. Every transition is a compare-and-set against the
    store, so a transition that loses a race is reported as skipped with the
    reason derived from the status that won.
    """

    def __init__(self, store: IOUStore):
        self.store = store

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------

    def create(self, **submission: Any) -> IOU:
        iou = self.store.create(**submission)
        increment_iou_created()
        logger.info(
            "iou created id=%s merchant=%s beneficiary=%s amount=%s nonce=%s",
            iou.id,
            iou.merchant,
            iou.beneficiary,
            iou.amount,
            iou.nonce,
        )
        return iou

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def mark_synced(
        self, iou_id: int, merchant: str, *, settling_until: Optional[datetime] = None
    ) -> TransitionResult:
        """settling_until takes the settlement lease in the same compare-and-set."""
        iou = self.store.get(iou_id)
        if iou is None:
            return TransitionResult(iou_id, None, False, NOT_FOUND)
        if not iou.owned_by(merchant):
            return TransitionResult(iou_id, iou, False, MERCHANT_MISMATCH)
        if iou.status != PENDING:
            return TransitionResult(iou_id, iou, False, NOT_PENDING)

        updated = self.store.update_status(
            iou_id,
            from_status=PENDING,
            new_status=SYNCED,
            synced_at=_utcnow(),
            settling_until=settling_until,
        )
        if updated is None:
            return self._lost(iou_id, NOT_PENDING)
        self._applied(updated, PENDING)
        return TransitionResult(iou_id, updated, True)

    def mark_settled(self, iou_id: int, tx_hash: str) -> TransitionResult:
        tx_hash = (tx_hash or "").strip()
        if not tx_hash:
            raise ValidationError("txHash is required to mark an IOU settled")

        iou = self.store.get(iou_id)
        if iou is None:
            return TransitionResult(iou_id, None, False, NOT_FOUND)
        if iou.status == SETTLED:
            return TransitionResult(iou_id, iou, False, ALREADY_SETTLED)
        if iou.status != SYNCED:
            return TransitionResult(iou_id, iou, False, NOT_SYNCED)

        updated = self.store.update_status(
            iou_id,
            from_status=SYNCED,
            new_status=SETTLED,
            settled_at=_utcnow(),
            tx_hash=tx_hash,
            last_error=None,
            settling_until=None,
        )
        if updated is None:
            current = self.store.get(iou_id)
            reason = ALREADY_SETTLED if current is not None and current.status == SETTLED else NOT_SYNCED
            return TransitionResult(iou_id, current, False, reason)
        self._applied(updated, SYNCED)
        return TransitionResult(iou_id, updated, True)

    def mark_failed(self, iou_id: int, error: str) -> TransitionResult:
        iou = self.store.get(iou_id)
        if iou is None:
            return TransitionResult(iou_id, None, False, NOT_FOUND)
        if iou.status not in (PENDING, SYNCED):
            return TransitionResult(iou_id, iou, False, TERMINAL)

        updated = self.store.update_status(
            iou_id,
            from_status=iou.status,
            new_status=FAILED,
            last_error=error,
            settling_until=None,
        )
        if updated is None:
            return self._lost(iou_id, TERMINAL)
        self._applied(updated, iou.status)
        return TransitionResult(iou_id, updated, True)

    def release(self, iou_id: int, error: str) -> TransitionResult:
        """synced -> pending, used only by the revert_pending failure policy."""
        iou = self.store.get(iou_id)
        if iou is None:
            return TransitionResult(iou_id, None, False, NOT_FOUND)
        if iou.status != SYNCED:
            return TransitionResult(iou_id, iou, False, NOT_SYNCED)

        updated = self.store.update_status(
            iou_id,
            from_status=SYNCED,
            new_status=PENDING,
            allow_release=True,
            synced_at=None,
            last_error=error,
            settling_until=None,
        )
        if updated is None:
            return self._lost(iou_id, NOT_SYNCED)
        self._applied(updated, SYNCED)
        return TransitionResult(iou_id, updated, True)

    def claim(self, iou_id: int, lease_seconds: float) -> Optional[IOU]:
        """Lease a synced IOU for one settlement run; None if someone else holds it."""
        now = _utcnow()
        claimed = self.store.claim(iou_id, until=now + timedelta(seconds=lease_seconds), now=now)
        if claimed is None:
            logger.debug("iou claim refused id=%s", iou_id)
        return claimed

    def record_failure(self, iou_id: int, error: Optional[str]) -> Optional[IOU]:
        return self.store.record_attempt(iou_id, error=error)

    # ------------------------------------------------------------------

    def _lost(self, iou_id: int, reason: str) -> TransitionResult:
        current = self.store.get(iou_id)
        if current is None:
            return TransitionResult(iou_id, None, False, NOT_FOUND)
        return TransitionResult(iou_id, current, False, reason)

    @staticmethod
    def _applied(iou: IOU, from_status: str) -> None:
        increment_iou_transition(iou.status)
        logger.info("iou transition id=%s %s -> %s", iou.id, from_status, iou.status)
