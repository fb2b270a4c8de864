# multisig/engine/tracker.py
from multisig.core.errors import AlreadyExecuted, UnknownOwner
from multisig.core.types import OwnerSet, TransactionRecord, TxStatus
from multisig.storage import ProposalStore


class ConfirmationTracker:
    """
    Quorum bookkeeping for proposals, independent of execution.
    Confirmation is set membership: confirming twice is a no-op.
    """

    def __init__(self, owners: OwnerSet, store: ProposalStore):
        self.owners = owners
        self.store = store

    @property
    def quorum(self) -> int:
        return self.owners.quorum

    def confirm(self, record: TransactionRecord, owner_id: str) -> TransactionRecord:
        if owner_id not in self.owners:
            raise UnknownOwner(owner_id)
        if record.executed:
            raise AlreadyExecuted(record.id)
        if owner_id in record.confirmations:
            return record
        return self.store.add_confirmation(record.id, owner_id)

    def count(self, record: TransactionRecord) -> int:
        return sum(1 for owner_id in record.confirmations if owner_id in self.owners)

    def has_quorum(self, record: TransactionRecord) -> bool:
        return self.count(record) >= self.quorum

    def missing(self, record: TransactionRecord) -> int:
        """Confirmations still needed before the record may execute."""
        return max(self.quorum - self.count(record), 0)

    def status(self, record: TransactionRecord) -> TxStatus:
        if record.executed:
            return TxStatus.EXECUTED
        if self.has_quorum(record):
            return TxStatus.CONFIRMED
        return TxStatus.PENDING
