# multisig/ledger/memory.py
import threading
from typing import Dict, Mapping, Optional

from multisig.core.errors import LedgerRejected
from multisig.core.types import TxType, normalize_address, validate_amount
from . import TREASURY_ADDRESS, Ledger, Receipt, replayed


class InMemoryLedger(Ledger):
    """Process-local ledger with per-address balances. Used in tests and demos."""

    def __init__(
        self,
        balances: Optional[Mapping[str, int]] = None,
        treasury: str = TREASURY_ADDRESS,
    ):
        self.treasury = normalize_address(treasury)
        self._lock = threading.Lock()
        self._balances: Dict[str, int] = {}
        self._receipts: Dict[int, Receipt] = {}
        for address, amount in (balances or {}).items():
            self._balances[normalize_address(address)] = validate_amount(amount)

    def apply_mint(self, account: str, amount: int, *, tx_id: Optional[int] = None) -> Receipt:
        account = normalize_address(account)
        validate_amount(amount)
        with self._lock:
            if tx_id is not None and tx_id in self._receipts:
                return replayed(self._receipts[tx_id], TxType.MINT, account, amount)
            self._balances[account] = self._balances.get(account, 0) + amount
            return self._record(Receipt.issue(tx_id, TxType.MINT, account, amount))

    def apply_burn(
        self, amount: int, account: Optional[str] = None, *, tx_id: Optional[int] = None
    ) -> Receipt:
        source = self.treasury if account is None else normalize_address(account)
        validate_amount(amount)
        with self._lock:
            if tx_id is not None and tx_id in self._receipts:
                return replayed(self._receipts[tx_id], TxType.BURN, source, amount)
            balance = self._balances.get(source, 0)
            if balance < amount:
                raise LedgerRejected(
                    f"Cannot burn {amount} from {source}: balance is {balance}"
                )
            self._balances[source] = balance - amount
            return self._record(Receipt.issue(tx_id, TxType.BURN, source, amount))

    def _record(self, receipt: Receipt) -> Receipt:
        if receipt.tx_id is not None:
            self._receipts[receipt.tx_id] = receipt
        return receipt

    def query_balance(self, address: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(address), 0)

    def total_supply(self) -> int:
        with self._lock:
            return sum(self._balances.values())

    def find_receipt(self, tx_id: int) -> Optional[Receipt]:
        with self._lock:
            return self._receipts.get(tx_id)
