# tests/test_core.py
import pytest

from multisig.core.types import (
    OwnerSet,
    TransactionRecord,
    TxType,
    normalize_address,
    utc_now,
    validate_amount,
)
from multisig.core.canon import canonical_json, payload_hash
from multisig.core.errors import InvalidArgument, MultisigError, LedgerTimeout, LedgerUnavailable, NotFound


@pytest.fixture
def sample_record():
    return TransactionRecord(
        id=1,
        tx_type=TxType.MINT,
        account="0x" + "ab" * 20,
        amount=100,
        submitted_at=utc_now(),
    )


def test_record_immutable(sample_record):
    with pytest.raises(AttributeError):
        sample_record.executed = True


def test_record_defaults(sample_record):
    assert sample_record.executed is False
    assert sample_record.confirmations == frozenset()
    assert sample_record.receipt_id is None


def test_record_to_dict(sample_record):
    d = sample_record.to_dict()
    assert d["tx_type"] == "mint"
    assert d["amount"] == 100
    assert d["confirmations"] == []
    assert d["executed"] is False


def test_payload_excludes_mutable_fields(sample_record):
    assert set(sample_record.payload()) == {"id", "tx_type", "account", "amount", "submitted_at"}


def test_payload_amount_is_exact_decimal(sample_record):
    big = TransactionRecord(**{**sample_record.__dict__, "amount": 10**18 + 1})
    assert big.payload()["amount"] == "1000000000000000001"
    assert '"amount":"1000000000000000001"' in canonical_json(big.payload()).decode("utf-8")
    assert big.to_dict()["amount"] == 10**18 + 1
    assert payload_hash(big.payload()) != payload_hash(
        TransactionRecord(**{**sample_record.__dict__, "amount": 10**18}).payload()
    )


def test_payload_hash_deterministic(sample_record):
    other = TransactionRecord(**sample_record.__dict__)
    assert payload_hash(sample_record.payload()) == payload_hash(other.payload())
    assert len(payload_hash(sample_record.payload())) == 64


def test_canonical_json_sorting():
    canon = canonical_json({"z": 1, "a": "hello", "nested": {"b": 2, "a": 1}}).decode("utf-8")
    assert canon == '{"a":"hello","nested":{"a":1,"b":2},"z":1}'


def test_normalize_address_lowercases():
    assert normalize_address("0x" + "AB" * 20) == "0x" + "ab" * 20


@pytest.mark.parametrize("bad", ["", "0x123", "ab" * 20, "0x" + "zz" * 20, None, 42])
def test_normalize_address_rejects_malformed(bad):
    with pytest.raises(InvalidArgument):
        normalize_address(bad)


def test_validate_amount():
    assert validate_amount(0) == 0
    assert validate_amount(10**30) == 10**30
    for bad in (-1, 1.5, "10", True, None):
        with pytest.raises(InvalidArgument):
            validate_amount(bad)


def test_owner_set_valid():
    owners = OwnerSet(["O1", "O2", "O3"], 2)
    assert owners.owners == ("O1", "O2", "O3")
    assert "O2" in owners
    assert "Ox" not in owners
    assert len(owners) == 3


@pytest.mark.parametrize("owners, quorum", [
    ((), 1),
    (("O1", "O1"), 1),
    (("O1", "O2"), 0),
    (("O1", "O2"), 3),
    (("O1", ""), 1),
    (("O1", " O2"), 1),
    (("O1", "O2"), True),
])
def test_owner_set_invalid(owners, quorum):
    with pytest.raises(InvalidArgument):
        OwnerSet(owners, quorum)


def test_error_hierarchy():
    assert issubclass(InvalidArgument, ValueError)
    assert issubclass(NotFound, LookupError)
    assert issubclass(LedgerTimeout, LedgerUnavailable)
    assert LedgerTimeout.retryable is True
    assert NotFound.retryable is False
    assert str(NotFound(7)) == "Transaction 7 not found"
    assert isinstance(NotFound(7), MultisigError)
