# app/ious/views.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from app.ious.model import FAILED, IOU, STATUSES


def merchant_summary(ious: Iterable[IOU]) -> dict[str, Any]:
    """
    Fold over the given IOUs. totalAmount excludes failed IOUs.
    """
    rows = list(ious)
    counts = {status: 0 for status in STATUSES}
    total_amount = Decimal("0")
    for iou in rows:
        counts[iou.status] = counts.get(iou.status, 0) + 1
        if iou.status != FAILED:
            total_amount += iou.amount

    return {
        "total": len(rows),
        **counts,
        "totalAmount": total_amount,
    }


def system_summary(ious: Iterable[IOU]) -> dict[str, Any]:
    rows = list(ious)
    summary = merchant_summary(rows)
    summary["merchantCount"] = len({iou.merchant.lower() for iou in rows})
    summary["beneficiaryCount"] = len({iou.beneficiary.lower() for iou in rows})
    return summary
