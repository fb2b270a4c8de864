# multisig/__init__.py
"""
multisig — quorum-gated mint/burn authorization on top of an external ledger.
Owners submit and confirm proposals; a proposal executes exactly once, and only
after enough distinct owners have confirmed it.
"""

__version__ = "0.1.0-dev"

from multisig.core.errors import (
    AlreadyExecuted,
    InvalidArgument,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    MultisigError,
    NotFound,
    OperationTimeout,
    QuorumNotMet,
    UnknownOwner,
)
from multisig.core.types import OwnerSet, TransactionRecord, TxStatus, TxType
from multisig.config import EngineSettings
from multisig.engine.engine import MultisigEngine
from multisig.engine.events import EngineEvent, EventKind, Subscription
from multisig.ledger import InMemoryLedger, Ledger, Receipt, SQLiteLedger
from multisig.storage import MemoryProposalStore, ProposalStore, SQLiteProposalStore, create_store
from multisig.verify.verifier import AuditVerifier, FailureCategory
