# tests/test_tracker.py
import itertools

import pytest

from multisig.core.errors import AlreadyExecuted, UnknownOwner
from multisig.core.types import OwnerSet, TxStatus, TxType
from multisig.engine.tracker import ConfirmationTracker
from multisig.storage import MemoryProposalStore

OWNERS = ("O1", "O2", "O3", "O4")


@pytest.fixture
def store():
    return MemoryProposalStore()


@pytest.fixture
def tracker(store):
    return ConfirmationTracker(OwnerSet(OWNERS, 3), store)


def test_confirm_adds_owner(tracker, store):
    record = store.get(store.submit(TxType.BURN, None, 10))
    record = tracker.confirm(record, "O1")
    assert record.confirmations == frozenset({"O1"})
    assert store.get(record.id).confirmations == frozenset({"O1"})


def test_reconfirm_never_increases_count(tracker, store):
    record = store.get(store.submit(TxType.BURN, None, 10))
    for _ in range(3):
        record = tracker.confirm(record, "O2")
    assert tracker.count(record) == 1
    assert tracker.missing(record) == 2


def test_unknown_owner_rejected(tracker, store):
    record = store.get(store.submit(TxType.BURN, None, 10))
    with pytest.raises(UnknownOwner):
        tracker.confirm(record, "Ox")
    assert store.get(record.id).confirmations == frozenset()


def test_unknown_owner_checked_before_executed(tracker, store):
    tx_id = store.submit(TxType.BURN, None, 10)
    record = store.mark_executed(tx_id, "0xr")
    with pytest.raises(UnknownOwner):
        tracker.confirm(record, "Ox")
    with pytest.raises(AlreadyExecuted):
        tracker.confirm(record, "O1")


def test_confirm_on_stale_snapshot_of_executed_record(tracker, store):
    tx_id = store.submit(TxType.BURN, None, 10)
    stale = store.get(tx_id)
    store.mark_executed(tx_id, "0xr")
    with pytest.raises(AlreadyExecuted):
        tracker.confirm(stale, "O1")


@pytest.mark.parametrize("order", list(itertools.permutations(OWNERS, 3)))
def test_quorum_reached_exactly_at_threshold_any_order(order):
    store = MemoryProposalStore()
    tracker = ConfirmationTracker(OwnerSet(OWNERS, 3), store)
    record = store.get(store.submit(TxType.MINT, "0x" + "22" * 20, 1))

    for i, owner in enumerate(order, start=1):
        assert not tracker.has_quorum(record)
        record = tracker.confirm(record, owner)
        assert tracker.has_quorum(record) == (i >= 3)


def test_status_transitions(tracker, store):
    tx_id = store.submit(TxType.BURN, None, 10)
    record = store.get(tx_id)
    assert tracker.status(record) is TxStatus.PENDING

    for owner in ("O1", "O2", "O3"):
        record = tracker.confirm(record, owner)
    assert tracker.status(record) is TxStatus.CONFIRMED

    record = store.mark_executed(tx_id, "0xr")
    assert tracker.status(record) is TxStatus.EXECUTED


def test_foreign_confirmations_do_not_count(store):
    # a record confirmed under a wider owner set only counts current owners
    tx_id = store.submit(TxType.BURN, None, 10)
    for owner in ("O1", "stranger"):
        store.add_confirmation(tx_id, owner)
    tracker = ConfirmationTracker(OwnerSet(("O1", "O2"), 2), store)
    record = store.get(tx_id)
    assert tracker.count(record) == 1
    assert not tracker.has_quorum(record)
