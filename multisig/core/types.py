# multisig/core/types.py
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from multisig.core.errors import InvalidArgument

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class TxType(Enum):
    MINT = "mint"
    BURN = "burn"


class TxStatus(Enum):
    """Derived lifecycle state. Never stored."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def normalize_address(account: str) -> str:
    if not isinstance(account, str) or not ADDRESS_RE.match(account.strip()):
        raise InvalidArgument(f"Malformed address: {account!r}")
    return account.strip().lower()


def validate_amount(amount: int) -> int:
    # bool is an int subclass; True is not a quantity
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument(f"Amount must be an integer, got {amount!r}")
    if amount < 0:
        raise InvalidArgument(f"Amount must be non-negative, got {amount}")
    return amount


@dataclass(frozen=True)
class TransactionRecord:
    """Snapshot of a proposed mint or burn. The store owns all mutation."""
    id: int
    tx_type: TxType
    account: Optional[str]              # None on a burn means the ledger treasury
    amount: int                         # smallest indivisible unit
    submitted_at: str
    payload_hash: str = ""              # hex sha256 of the canonical payload
    executed: bool = False
    confirmations: FrozenSet[str] = field(default_factory=frozenset)
    executed_at: Optional[str] = None
    receipt_id: Optional[str] = None

    def payload(self) -> dict:
        """The part of the record fixed at submission, used for hashing."""
        # decimal string: JSON numbers lose precision above 2**53
        return {
            "id": self.id,
            "tx_type": self.tx_type.value,
            "account": self.account,
            "amount": str(self.amount),
            "submitted_at": self.submitted_at,
        }

    def to_dict(self) -> dict:
        d = self.payload()
        d.update(
            amount=self.amount,
            payload_hash=self.payload_hash,
            executed=self.executed,
            confirmations=sorted(self.confirmations),
            executed_at=self.executed_at,
            receipt_id=self.receipt_id,
        )
        return d


@dataclass(frozen=True)
class OwnerSet:
    """Fixed, ordered owners and the number of confirmations needed to execute."""
    owners: Tuple[str, ...]
    quorum: int

    def __post_init__(self):
        owners = tuple(self.owners)
        object.__setattr__(self, "owners", owners)

        if not owners:
            raise InvalidArgument("Owner set must not be empty")
        for owner in owners:
            if not isinstance(owner, str) or not owner or owner != owner.strip():
                raise InvalidArgument(f"Invalid owner id: {owner!r}")
        if len(set(owners)) != len(owners):
            raise InvalidArgument("Owner ids must be distinct")
        if isinstance(self.quorum, bool) or not isinstance(self.quorum, int):
            raise InvalidArgument(f"Quorum must be an integer, got {self.quorum!r}")
        if not 1 <= self.quorum <= len(owners):
            raise InvalidArgument(
                f"Quorum must be between 1 and {len(owners)}, got {self.quorum}"
            )

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self.owners

    def __len__(self) -> int:
        return len(self.owners)
