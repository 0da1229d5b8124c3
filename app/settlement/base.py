# app/settlement/base.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol


@dataclass(frozen=True)
class SettlementReceipt:
    tx_hash: str
    block_number: Optional[int] = None


class SettlementClient(Protocol):
    """
    The relief fund contract as seen by the reconciler.
    Failures raise app.ious.errors.SettlementError.
    """

    def relay_spend(
        self,
        *,
        beneficiary: str,
        merchant: str,
        amount: Decimal,
        description: str,
        authorization: str,
        nonce: int,
    ) -> SettlementReceipt: ...

    def get_nonce(self, beneficiary: str) -> int: ...


def describe_iou(iou_id: int) -> str:
    return f"Offline IOU #{iou_id}"
