# multisig/storage/memory.py
import itertools
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from multisig.core.canon import payload_hash
from multisig.core.errors import AlreadyExecuted, InvalidArgument, NotFound
from multisig.core.types import OwnerSet, TransactionRecord, TxType, utc_now
from . import ProposalStore


class MemoryProposalStore(ProposalStore):
    """In-process registry. Records live as long as the store object."""

    def __init__(self):
        super().__init__()
        self._mutex = threading.Lock()
        self._ids = itertools.count(1)
        self._records: Dict[int, TransactionRecord] = {}   # insertion order == id order
        self._owners: Optional[OwnerSet] = None

    def _insert(self, tx_type: TxType, account: Optional[str], amount: int) -> int:
        with self._mutex:
            tx_id = next(self._ids)
            record = TransactionRecord(
                id=tx_id,
                tx_type=tx_type,
                account=account,
                amount=amount,
                submitted_at=utc_now(),
            )
            record = replace(record, payload_hash=payload_hash(record.payload()))
            self._records[tx_id] = record
        return tx_id

    def get(self, tx_id: int) -> TransactionRecord:
        with self._mutex:
            try:
                return self._records[tx_id]
            except KeyError:
                raise NotFound(tx_id) from None

    def list(self) -> List[TransactionRecord]:
        with self._mutex:
            return list(self._records.values())

    def add_confirmation(self, tx_id: int, owner_id: str) -> TransactionRecord:
        with self._mutex:
            record = self._records.get(tx_id)
            if record is None:
                raise NotFound(tx_id)
            if record.executed:
                raise AlreadyExecuted(tx_id)
            if owner_id in record.confirmations:
                return record
            record = replace(record, confirmations=record.confirmations | {owner_id})
            self._records[tx_id] = record
            return record

    def mark_executed(self, tx_id: int, receipt_id: str) -> TransactionRecord:
        with self._mutex:
            record = self._records.get(tx_id)
            if record is None:
                raise NotFound(tx_id)
            if record.executed:
                raise AlreadyExecuted(tx_id)
            record = replace(
                record, executed=True, executed_at=utc_now(), receipt_id=receipt_id
            )
            self._records[tx_id] = record
            return record

    def save_owner_set(self, owners: OwnerSet) -> None:
        with self._mutex:
            if self._owners is not None and self._owners != owners:
                raise InvalidArgument("A different owner set is already configured")
            self._owners = owners

    def load_owner_set(self) -> Optional[OwnerSet]:
        return self._owners

    def close(self) -> None:
        pass
