# app/ious/model.py
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

PENDING = "pending"
SYNCED = "synced"
SETTLED = "settled"
FAILED = "failed"

STATUSES = (PENDING, SYNCED, SETTLED, FAILED)
TERMINAL_STATUSES = (SETTLED, FAILED)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class IOU:
    id: int
    beneficiary: str
    merchant: str
    amount: Decimal
    signature: str
    nonce: Optional[int]
    timestamp: datetime
    status: str
    created_at: datetime
    synced_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    tx_hash: Optional[str] = None
    attempt_count: int = 0
    last_error: Optional[str] = None
    # set while a settlement run holds the IOU; expired leases can be reclaimed
    settling_until: Optional[datetime] = None

    def owned_by(self, merchant: str) -> bool:
        return self.merchant.lower() == (merchant or "").strip().lower()

    def evolve(self, **changes: Any) -> "IOU":
        return replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        """Public (camelCase) representation used by the HTTP layer."""
        return {
            "id": self.id,
            "beneficiary": self.beneficiary,
            "merchant": self.merchant,
            "amount": str(self.amount),
            "signature": self.signature,
            "nonce": self.nonce,
            "timestamp": _iso(self.timestamp),
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "syncedAt": _iso(self.synced_at),
            "settledAt": _iso(self.settled_at),
            "txHash": self.tx_hash,
            "attemptCount": self.attempt_count,
            "lastError": self.last_error,
            "settlingUntil": _iso(self.settling_until),
        }
