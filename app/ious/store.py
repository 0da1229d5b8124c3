# app/ious/store.py
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Optional, Protocol

from app.ious.errors import DuplicateIOUError, ValidationError
from app.ious.model import IOU, PENDING, STATUSES, SYNCED
from app.ious.state_machine import assert_settled_invariant, assert_transition
from app.ious.validate import normalize_address, parse_amount, parse_nonce, require_signature

# columns a status update may touch besides status itself
UPDATABLE_FIELDS = ("synced_at", "settled_at", "tx_hash", "last_error", "attempt_count", "settling_until")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def prepare_new_iou(
    *,
    beneficiary: Any,
    merchant: Any,
    amount: Any,
    signature: Any,
    timestamp: Optional[datetime] = None,
    nonce: Any = None,
) -> dict[str, Any]:
    """
    Validate a submission and return the column values of a new pending IOU.
    Raises ValidationError without side effects.
    """
    now = _utcnow()
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return {
        "beneficiary": normalize_address(beneficiary, field="beneficiary"),
        "merchant": normalize_address(merchant, field="merchant"),
        "amount": parse_amount(amount),
        "signature": require_signature(signature),
        "nonce": parse_nonce(nonce),
        "timestamp": timestamp or now,
        "status": PENDING,
        "created_at": now,
    }


def check_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported IOU update fields: {sorted(unknown)}")


class IOUStore(Protocol):
    def create(
        self,
        *,
        beneficiary: Any,
        merchant: Any,
        amount: Any,
        signature: Any,
        timestamp: Optional[datetime] = None,
        nonce: Any = None,
    ) -> IOU: ...

    def get(self, iou_id: int) -> Optional[IOU]: ...

    def list_by_merchant(self, merchant: str) -> list[IOU]: ...

    def list_all(self) -> list[IOU]: ...

    def list_by_status(self, status: str, *, limit: Optional[int] = None) -> list[IOU]: ...

    def update_status(
        self,
        iou_id: int,
        *,
        from_status: str,
        new_status: str,
        allow_release: bool = False,
        **fields: Any,
    ) -> Optional[IOU]: ...

    def claim(self, iou_id: int, *, until: datetime, now: Optional[datetime] = None) -> Optional[IOU]: ...

    def record_attempt(self, iou_id: int, *, error: Optional[str]) -> Optional[IOU]: ...

    def delete(self, iou_id: int) -> bool: ...

    def purge(self) -> int: ...


class MemoryIOUStore:
    """
    In-process IOU store.

    One lock guards id assignment, the nonce index and every write, so a status
    update is a compare-and-set: it applies only if the stored status still
    equals from_status when the lock is held.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[int, IOU] = {}
        self._nonces: set[tuple[str, int]] = set()
        self._last_id = 0

    def create(
        self,
        *,
        beneficiary: Any,
        merchant: Any,
        amount: Any,
        signature: Any,
        timestamp: Optional[datetime] = None,
        nonce: Any = None,
    ) -> IOU:
        values = prepare_new_iou(
            beneficiary=beneficiary,
            merchant=merchant,
            amount=amount,
            signature=signature,
            timestamp=timestamp,
            nonce=nonce,
        )
        nonce_key = None
        if values["nonce"] is not None:
            nonce_key = (values["beneficiary"].lower(), values["nonce"])

        with self._lock:
            if nonce_key is not None and nonce_key in self._nonces:
                raise DuplicateIOUError(
                    f"nonce {values['nonce']} already used by beneficiary {values['beneficiary']}"
                )
            self._last_id += 1
            iou = IOU(id=self._last_id, **values)
            self._records[iou.id] = iou
            if nonce_key is not None:
                self._nonces.add(nonce_key)
        return iou

    def get(self, iou_id: int) -> Optional[IOU]:
        with self._lock:
            return self._records.get(iou_id)

    def list_by_merchant(self, merchant: str) -> list[IOU]:
        wanted = (merchant or "").strip().lower()
        with self._lock:
            rows = [iou for iou in self._records.values() if iou.merchant.lower() == wanted]
        return sorted(rows, key=lambda iou: iou.id)

    def list_all(self) -> list[IOU]:
        with self._lock:
            rows = list(self._records.values())
        return sorted(rows, key=lambda iou: iou.id)

    def list_by_status(self, status: str, *, limit: Optional[int] = None) -> list[IOU]:
        if status not in STATUSES:
            raise ValidationError(f"Unknown IOU status: {status}")
        rows = [iou for iou in self.list_all() if iou.status == status]
        return rows[:limit] if limit is not None else rows

    def update_status(
        self,
        iou_id: int,
        *,
        from_status: str,
        new_status: str,
        allow_release: bool = False,
        **fields: Any,
    ) -> Optional[IOU]:
        assert_transition(from_status, new_status, allow_release=allow_release)
        assert_settled_invariant(new_status, fields.get("tx_hash"))
        check_update_fields(fields)

        with self._lock:
            current = self._records.get(iou_id)
            if current is None or current.status != from_status:
                return None
            updated = current.evolve(status=new_status, **fields)
            self._records[iou_id] = updated
        return updated

    def claim(self, iou_id: int, *, until: datetime, now: Optional[datetime] = None) -> Optional[IOU]:
        """
        Take the settlement lease on a synced IOU. Returns None when the IOU is
        gone, no longer synced, or another run holds an unexpired lease.
        """
        now = now or _utcnow()
        with self._lock:
            current = self._records.get(iou_id)
            if current is None or current.status != SYNCED:
                return None
            if current.settling_until is not None and current.settling_until > now:
                return None
            updated = current.evolve(settling_until=until)
            self._records[iou_id] = updated
        return updated

    def record_attempt(self, iou_id: int, *, error: Optional[str]) -> Optional[IOU]:
        with self._lock:
            current = self._records.get(iou_id)
            if current is None:
                return None
            updated = current.evolve(
                attempt_count=current.attempt_count + 1,
                last_error=error,
                settling_until=None,
            )
            self._records[iou_id] = updated
        return updated

    def delete(self, iou_id: int) -> bool:
        with self._lock:
            iou = self._records.pop(iou_id, None)
            if iou is None:
                return False
            if iou.nonce is not None:
                self._nonces.discard((iou.beneficiary.lower(), iou.nonce))
        return True

    def purge(self) -> int:
        # ids keep increasing after a purge
        with self._lock:
            count = len(self._records)
            self._records.clear()
            self._nonces.clear()
        return count
