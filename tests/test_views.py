from __future__ import annotations

from decimal import Decimal

from app.ious.views import merchant_summary, system_summary
from tests.conftest import BENEFICIARY, MERCHANT, OTHER_BENEFICIARY, OTHER_MERCHANT, make_iou


def test_empty_summaries_are_zero():
    assert merchant_summary([]) == {
        "total": 0,
        "pending": 0,
        "synced": 0,
        "settled": 0,
        "failed": 0,
        "totalAmount": Decimal("0"),
    }
    summary = system_summary([])
    assert summary["merchantCount"] == 0
    assert summary["beneficiaryCount"] == 0


def test_summary_is_a_fold_over_records(engine):
    a = make_iou(engine, amount="10", nonce=1)
    b = make_iou(engine, amount="2.5", nonce=2)
    c = make_iou(engine, amount="7", nonce=3)
    d = make_iou(engine, amount="100", nonce=4)

    engine.mark_synced(b.id, MERCHANT)
    engine.mark_synced(c.id, MERCHANT)
    engine.mark_settled(c.id, "0xc")
    engine.mark_failed(d.id, "rejected")

    ious = engine.store.list_by_merchant(MERCHANT)
    summary = merchant_summary(ious)

    assert summary["total"] == len(ious) == 4
    assert (summary["pending"], summary["synced"], summary["settled"], summary["failed"]) == (1, 1, 1, 1)
    assert summary["pending"] + summary["synced"] + summary["settled"] + summary["failed"] == summary["total"]
    assert summary["totalAmount"] == Decimal("19.5")
    assert summary["totalAmount"] == sum(i.amount for i in ious if i.status != "failed")
    assert a.id in [i.id for i in ious]


def test_system_summary_counts_distinct_parties_case_insensitively(engine):
    make_iou(engine, nonce=1)
    make_iou(engine, merchant=MERCHANT.upper().replace("0X", "0x"), nonce=2)
    make_iou(engine, merchant=OTHER_MERCHANT, beneficiary=OTHER_BENEFICIARY)

    summary = system_summary(engine.store.list_all())
    assert summary["total"] == 3
    assert summary["merchantCount"] == 2
    assert summary["beneficiaryCount"] == 2
    assert BENEFICIARY != OTHER_BENEFICIARY


def test_summary_reflects_latest_state(engine):
    iou = make_iou(engine)
    assert merchant_summary(engine.store.list_all())["pending"] == 1

    engine.mark_synced(iou.id, MERCHANT)
    summary = merchant_summary(engine.store.list_all())
    assert summary["pending"] == 0
    assert summary["synced"] == 1
