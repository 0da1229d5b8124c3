# app/ious/state_machine.py
from app.ious.errors import InvalidTransition
from app.ious.model import FAILED, PENDING, SETTLED, SYNCED

ALLOWED = {
    PENDING: {SYNCED, FAILED},
    SYNCED: {SETTLED, FAILED},
    SETTLED: set(),
    FAILED: set(),
}

# synced -> pending is only reachable through the revert_pending failure policy
RELEASE = (SYNCED, PENDING)


def is_allowed(old: str, new: str, *, allow_release: bool = False) -> bool:
    if allow_release and (old, new) == RELEASE:
        return True
    return new in ALLOWED.get(old, set())


def assert_transition(old: str, new: str, *, allow_release: bool = False) -> None:
    if not is_allowed(old, new, allow_release=allow_release):
        raise InvalidTransition(f"Illegal IOU transition: {old} -> {new}")


def assert_settled_invariant(new_status: str, tx_hash: str | None) -> None:
    """
    Invariant: if an IOU is settled, it MUST have the tx hash that settled it.
    """
    if new_status == SETTLED and not tx_hash:
        raise ValueError("Invariant violation: status=settled requires tx_hash")
