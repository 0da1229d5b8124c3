import pytest

from app.ious.errors import InvalidTransition
from app.ious.state_machine import assert_settled_invariant, assert_transition, is_allowed


def test_valid_transitions():
    assert_transition("pending", "synced")
    assert_transition("pending", "failed")
    assert_transition("synced", "settled")
    assert_transition("synced", "failed")


def test_invalid_transition_skipping_states():
    with pytest.raises(InvalidTransition):
        assert_transition("pending", "settled")


def test_terminal_states_cannot_transition():
    for terminal in ("settled", "failed"):
        for target in ("pending", "synced", "settled", "failed"):
            with pytest.raises(InvalidTransition):
                assert_transition(terminal, target)


def test_backwards_moves_rejected_without_release():
    with pytest.raises(InvalidTransition):
        assert_transition("synced", "pending")
    assert not is_allowed("synced", "pending")


def test_release_only_allows_synced_to_pending():
    assert_transition("synced", "pending", allow_release=True)
    with pytest.raises(InvalidTransition):
        assert_transition("settled", "pending", allow_release=True)
    with pytest.raises(InvalidTransition):
        assert_transition("failed", "pending", allow_release=True)


def test_settled_requires_tx_hash():
    with pytest.raises(ValueError):
        assert_settled_invariant("settled", None)
    assert_settled_invariant("settled", "0xabc")
    assert_settled_invariant("failed", None)
