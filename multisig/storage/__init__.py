# multisig/storage/__init__.py
"""
Storage backends for the append-only proposal registry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from multisig.core.errors import InvalidArgument, OperationTimeout
from multisig.core.types import (
    OwnerSet,
    TransactionRecord,
    TxType,
    normalize_address,
    validate_amount,
)

logger = logging.getLogger(__name__)


class RecordLocks:
    """
    One lock per transaction id, so unrelated proposals never contend.
    An entry lives only while some caller holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, tx_id: int, timeout: Optional[float] = None) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(tx_id, threading.Lock())
            self._users[tx_id] = self._users.get(tx_id, 0) + 1

        try:
            if not lock.acquire(timeout=-1 if timeout is None else timeout):
                logger.warning("[multisig] Gave up waiting for lock on transaction %s", tx_id)
                raise OperationTimeout(
                    f"Transaction {tx_id} is busy (lock not acquired within {timeout}s)"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._users[tx_id] -= 1
                if not self._users[tx_id]:
                    del self._users[tx_id]
                    del self._locks[tx_id]


class ProposalStore(ABC):
    """Abstract base for all proposal registries."""

    def __init__(self):
        self._record_locks = RecordLocks()

    def submit(self, tx_type: Union[TxType, str], account: Optional[str], amount: int) -> int:
        """Validate and persist a new record. Returns its id."""
        try:
            tx_type = TxType(tx_type)
        except ValueError:
            raise InvalidArgument(f"Unknown transaction type: {tx_type!r}")

        validate_amount(amount)
        if tx_type is TxType.MINT and account is None:
            raise InvalidArgument("A mint needs a target account")
        if account is not None:
            account = normalize_address(account)

        tx_id = self._insert(tx_type, account, amount)
        logger.info("[multisig] Submitted %s #%s (amount=%s)", tx_type.value, tx_id, amount)
        return tx_id

    def record_lock(self, tx_id: int, timeout: Optional[float] = None):
        """Critical section for read-modify-write sequences on one record."""
        return self._record_locks.hold(tx_id, timeout)

    def pending(self) -> List[TransactionRecord]:
        return [r for r in self.list() if not r.executed]

    @abstractmethod
    def _insert(self, tx_type: TxType, account: Optional[str], amount: int) -> int:
        pass

    @abstractmethod
    def get(self, tx_id: int) -> TransactionRecord:
        pass

    @abstractmethod
    def list(self) -> List[TransactionRecord]:
        pass

    @abstractmethod
    def add_confirmation(self, tx_id: int, owner_id: str) -> TransactionRecord:
        pass

    @abstractmethod
    def mark_executed(self, tx_id: int, receipt_id: str) -> TransactionRecord:
        pass

    @abstractmethod
    def save_owner_set(self, owners: OwnerSet) -> None:
        pass

    @abstractmethod
    def load_owner_set(self) -> Optional[OwnerSet]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_store(uri: str) -> ProposalStore:
    uri = uri.strip()
    if uri == "memory://":
        from .memory import MemoryProposalStore
        return MemoryProposalStore()

    if uri.startswith("sqlite://"):
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError("sqlite:// URI needs a database path")
        return SQLiteProposalStore(Path(raw_path).resolve())

    if uri and "://" not in uri:
        # Plain file path → SQLite
        return SQLiteProposalStore(Path(uri).resolve())

    raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryProposalStore
from .sqlite import SQLiteProposalStore

__all__ = [
    "ProposalStore",
    "RecordLocks",
    "create_store",
    "MemoryProposalStore",
    "SQLiteProposalStore",
]
