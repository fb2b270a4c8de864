# multisig/ledger/__init__.py
"""
The external ledger the engine delegates mint/burn effects to.

Ledgers are expected to apply each call atomically and durably. Passing the
transaction id lets a ledger recognise a retried execution and answer with the
original receipt instead of applying the effect twice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from multisig.core.canon import payload_hash
from multisig.core.errors import LedgerRejected
from multisig.core.types import TxType, utc_now

# ledger's own address; burns that name no account draw from it
TREASURY_ADDRESS = "0x" + "0" * 36 + "c0de"


@dataclass(frozen=True)
class Receipt:
    receipt_id: str
    tx_id: Optional[int]
    tx_type: TxType
    account: str
    amount: int
    applied_at: str

    @classmethod
    def issue(cls, tx_id: Optional[int], tx_type: TxType, account: str, amount: int) -> "Receipt":
        applied_at = utc_now()
        digest = payload_hash({
            "tx_id": tx_id,
            "tx_type": tx_type.value,
            "account": account,
            "amount": str(amount),
            "applied_at": applied_at,
        })
        return cls(
            receipt_id="0x" + digest,
            tx_id=tx_id,
            tx_type=tx_type,
            account=account,
            amount=amount,
            applied_at=applied_at,
        )

    def matches(self, tx_type: TxType, account: str, amount: int) -> bool:
        return (self.tx_type, self.account, self.amount) == (tx_type, account, amount)


class Ledger(ABC):
    """Abstract base for ledger collaborators."""

    @abstractmethod
    def apply_mint(self, account: str, amount: int, *, tx_id: Optional[int] = None) -> Receipt:
        pass

    @abstractmethod
    def apply_burn(
        self, amount: int, account: Optional[str] = None, *, tx_id: Optional[int] = None
    ) -> Receipt:
        pass

    @abstractmethod
    def query_balance(self, address: str) -> int:
        pass

    @abstractmethod
    def total_supply(self) -> int:
        pass

    @abstractmethod
    def find_receipt(self, tx_id: int) -> Optional[Receipt]:
        pass


def replayed(existing: Receipt, tx_type: TxType, account: str, amount: int) -> Receipt:
    """Answer a repeated tx_id with the receipt it already produced."""
    if not existing.matches(tx_type, account, amount):
        raise LedgerRejected(
            f"Transaction id {existing.tx_id} was already applied with a different effect"
        )
    return existing


from .memory import InMemoryLedger
from .sqlite import SQLiteLedger

__all__ = [
    "Ledger",
    "Receipt",
    "TREASURY_ADDRESS",
    "InMemoryLedger",
    "SQLiteLedger",
]
