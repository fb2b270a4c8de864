# multisig/verify/verifier.py
from typing import List, Optional
from dataclasses import dataclass
from enum import Enum

from multisig.core.canon import payload_hash
from multisig.core.types import OwnerSet, TransactionRecord
from multisig.ledger import Ledger
from multisig.storage import ProposalStore


class FailureCategory(str, Enum):
    SEQUENCE = "sequence"           # ids not strictly increasing
    INTEGRITY = "integrity"         # payload no longer matches its hash
    OWNER = "owner"                 # confirmed by someone outside the owner set
    QUORUM = "quorum"               # executed below quorum
    RECEIPT = "receipt"             # receipt missing or disagreeing with the ledger
    UNRECONCILED = "unreconciled"   # ledger applied it, registry never marked it
    STORAGE = "storage"             # trail could not be loaded


@dataclass
class VerificationFailure:
    tx_id: int
    message: str
    category: FailureCategory


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Audit trail is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.tx_id}] {f.category.value}: {f.message}")
        return "\n".join(lines)


class AuditVerifier:
    """
    Offline check of a stored audit trail.
    Optionally cross-checks executed records against the ledger's receipts.
    """

    def __init__(self, owners: OwnerSet, ledger: Optional[Ledger] = None):
        self.owners = owners
        self.ledger = ledger

    def verify(self, records: List[TransactionRecord]) -> VerificationResult:
        if not records:
            return VerificationResult(True, "Empty audit trail is valid")

        result = VerificationResult(True)

        def fail(tx_id: int, message: str, category: FailureCategory):
            result.failures.append(VerificationFailure(tx_id, message, category))
            result.is_valid = False

        # 1. Submission order
        for prev, rec in zip(records, records[1:]):
            if rec.id <= prev.id:
                fail(rec.id, f"Out of order: follows transaction {prev.id}", FailureCategory.SEQUENCE)

        for rec in records:
            # 2. Payload fixed at submission
            if payload_hash(rec.payload()) != rec.payload_hash:
                fail(rec.id, "Payload does not match its recorded hash", FailureCategory.INTEGRITY)

            # 3. Confirmations from owners only
            strangers = sorted(o for o in rec.confirmations if o not in self.owners)
            if strangers:
                fail(rec.id, f"Confirmed by non-owners: {', '.join(strangers)}", FailureCategory.OWNER)

            # 4. Execution preconditions
            valid_confirmations = len(rec.confirmations) - len(strangers)
            if rec.executed:
                if valid_confirmations < self.owners.quorum:
                    fail(rec.id,
                         f"Executed with {valid_confirmations} of {self.owners.quorum} confirmations",
                         FailureCategory.QUORUM)
                if not rec.receipt_id:
                    fail(rec.id, "Executed without a ledger receipt", FailureCategory.RECEIPT)

            # 5. Ledger agreement
            if self.ledger is not None:
                receipt = self.ledger.find_receipt(rec.id)
                if rec.executed and receipt is not None and receipt.receipt_id != rec.receipt_id:
                    fail(rec.id, f"Ledger receipt {receipt.receipt_id} differs from recorded one", FailureCategory.RECEIPT)
                if rec.executed and receipt is None:
                    fail(rec.id, "Ledger has no receipt for an executed transaction", FailureCategory.RECEIPT)
                if not rec.executed and receipt is not None:
                    fail(rec.id,
                         "Ledger applied this transaction but it is not marked executed; "
                         "run execute again to reconcile",
                         FailureCategory.UNRECONCILED)

        result.message = (
            f"Valid audit trail ({len(records)} transactions)"
            if result.is_valid else f"Failed with {len(result.failures)} issues"
        )
        return result

    def verify_from_storage(self, store: ProposalStore) -> VerificationResult:
        """
        Load every record from the store and verify the trail.
        Returns result with extra info if load fails.
        """
        try:
            records = store.list()
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load transactions from storage: {str(e)}",
                [VerificationFailure(-1, str(e), FailureCategory.STORAGE)]
            )

        return self.verify(records)
