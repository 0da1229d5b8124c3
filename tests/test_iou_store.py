from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.ious.errors import DuplicateIOUError, InvalidTransition, ValidationError
from app.ious.store import MemoryIOUStore
from settings import settings
from tests.conftest import BENEFICIARY, MERCHANT, OTHER_MERCHANT


def _create(store: MemoryIOUStore, **overrides):
    payload = {
        "beneficiary": BENEFICIARY,
        "merchant": MERCHANT,
        "amount": "10",
        "signature": "0xsig",
    }
    payload.update(overrides)
    return store.create(**payload)


def test_create_assigns_pending_and_defaults(store):
    before = datetime.now(timezone.utc)
    iou = _create(store)

    assert iou.id == 1
    assert iou.status == "pending"
    assert iou.amount == Decimal("10")
    assert iou.nonce is None
    assert iou.synced_at is None and iou.settled_at is None and iou.tx_hash is None
    assert iou.timestamp >= before
    assert iou.created_at >= before
    assert store.get(1) == iou


def test_client_timestamp_is_kept(store):
    ts = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    iou = _create(store, timestamp=ts, nonce=42)
    assert iou.timestamp == ts
    assert iou.nonce == 42


def test_ids_are_unique_and_increasing(store):
    ids = [_create(store, nonce=n).id for n in range(10)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 10


def test_ids_keep_increasing_after_delete_and_purge(store):
    first = _create(store)
    assert store.delete(first.id)
    second = _create(store)
    store.purge()
    third = _create(store)
    assert first.id < second.id < third.id


@pytest.mark.parametrize(
    "overrides",
    [
        {"beneficiary": None},
        {"merchant": ""},
        {"amount": None},
        {"signature": "   "},
        {"amount": "0"},
        {"amount": 0},
        {"amount": "-5"},
        {"amount": "abc"},
        {"amount": "NaN"},
        {"amount": "Infinity"},
        {"beneficiary": "not-an-address"},
        {"merchant": "0xZZ"},
        {"nonce": -1},
    ],
)
def test_create_rejects_malformed_records(store, overrides):
    with pytest.raises(ValidationError):
        _create(store, **overrides)
    assert store.list_all() == []


def test_strict_addresses_require_forty_hex_digits(store, monkeypatch):
    monkeypatch.setattr(settings, "STRICT_ADDRESSES", True, raising=False)
    with pytest.raises(ValidationError):
        _create(store, beneficiary="0xA")
    assert _create(store).beneficiary == BENEFICIARY


def test_replayed_nonce_is_rejected(store):
    _create(store, nonce=7)
    with pytest.raises(DuplicateIOUError):
        _create(store, beneficiary=BENEFICIARY.upper().replace("0X", "0x"), nonce=7)
    assert len(store.list_all()) == 1
    # same nonce from another beneficiary is fine
    _create(store, beneficiary="0x" + "d4" * 20, nonce=7)


def test_list_by_merchant_is_case_insensitive_and_ordered(store):
    a = _create(store, merchant=MERCHANT.upper().replace("0X", "0x"))
    _create(store, merchant=OTHER_MERCHANT)
    c = _create(store)

    rows = store.list_by_merchant(MERCHANT)
    assert [r.id for r in rows] == [a.id, c.id]
    assert store.list_by_merchant("0x" + "9" * 40) == []


def test_update_status_is_compare_and_set(store):
    iou = _create(store)
    now = datetime.now(timezone.utc)

    updated = store.update_status(iou.id, from_status="pending", new_status="synced", synced_at=now)
    assert updated.status == "synced"
    assert updated.synced_at == now

    # stale from_status matches nothing
    assert store.update_status(iou.id, from_status="pending", new_status="synced", synced_at=now) is None
    assert store.update_status(999, from_status="pending", new_status="synced") is None


def test_update_status_enforces_forward_only(store):
    iou = _create(store)
    with pytest.raises(InvalidTransition):
        store.update_status(iou.id, from_status="pending", new_status="settled", tx_hash="0x1")
    with pytest.raises(InvalidTransition):
        store.update_status(iou.id, from_status="failed", new_status="pending")
    assert store.get(iou.id).status == "pending"


def test_update_status_rejects_immutable_fields(store):
    iou = _create(store)
    with pytest.raises(ValueError):
        store.update_status(iou.id, from_status="pending", new_status="synced", amount=Decimal("1"))


def test_record_attempt(store):
    iou = _create(store)
    store.record_attempt(iou.id, error="boom")
    updated = store.record_attempt(iou.id, error="boom again")
    assert updated.attempt_count == 2
    assert updated.last_error == "boom again"
    assert updated.status == "pending"
    assert store.record_attempt(999, error="x") is None


def test_delete(store):
    iou = _create(store)
    assert store.delete(iou.id) is True
    assert store.get(iou.id) is None
    assert store.delete(iou.id) is False


def test_list_by_status_rejects_unknown_status(store):
    with pytest.raises(ValidationError):
        store.list_by_status("claimed")


def test_concurrent_transitions_serialize(store):
    iou = _create(store)
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(
            store.update_status(
                iou.id,
                from_status="pending",
                new_status="synced",
                synced_at=datetime.now(timezone.utc),
            )
        )

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert store.get(iou.id).synced_at == winners[0].synced_at


def test_concurrent_creates_get_distinct_ids(store):
    ids = []
    lock = threading.Lock()

    def worker(n):
        iou = _create(store, nonce=n)
        with lock:
            ids.append(iou.id)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(ids) == list(range(1, 21))


def test_claim_requires_synced_and_a_free_lease(store):
    iou = _create(store)
    now = datetime.now(timezone.utc)
    lease = now + timedelta(minutes=5)

    assert store.claim(iou.id, until=lease, now=now) is None
    store.update_status(iou.id, from_status="pending", new_status="synced")

    claimed = store.claim(iou.id, until=lease, now=now)
    assert claimed.settling_until == lease
    assert store.claim(iou.id, until=lease, now=now) is None
    assert store.claim(999, until=lease, now=now) is None

    later = lease + timedelta(seconds=1)
    assert store.claim(iou.id, until=later + timedelta(minutes=5), now=later) is not None


def test_record_attempt_releases_the_lease(store):
    iou = _create(store)
    now = datetime.now(timezone.utc)
    store.update_status(iou.id, from_status="pending", new_status="synced")
    store.claim(iou.id, until=now + timedelta(minutes=5), now=now)

    assert store.record_attempt(iou.id, error="timeout").settling_until is None
    assert store.claim(iou.id, until=now + timedelta(minutes=5), now=now) is not None


def test_concurrent_claims_have_one_winner(store):
    iou = _create(store)
    store.update_status(iou.id, from_status="pending", new_status="synced")
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        now = datetime.now(timezone.utc)
        results.append(store.claim(iou.id, until=now + timedelta(minutes=5), now=now))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len([r for r in results if r is not None]) == 1
