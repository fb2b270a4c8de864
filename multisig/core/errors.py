# multisig/core/errors.py
"""
Typed errors returned to the immediate caller of every engine operation.

Only ``retryable`` errors (ledger unreachable / timed out) should be retried
automatically; everything else needs a new decision from the operator.
"""


class MultisigError(Exception):
    """Base class for all engine errors."""
    code = "error"
    retryable = False


class InvalidArgument(MultisigError, ValueError):
    """Malformed amount, address or owner set."""
    code = "invalid_argument"


class NotFound(MultisigError, LookupError):
    """No transaction record with the requested id."""
    code = "not_found"

    def __init__(self, tx_id: int):
        self.tx_id = tx_id
        super().__init__(f"Transaction {tx_id} not found")


class UnknownOwner(MultisigError):
    code = "unknown_owner"

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"'{owner_id}' is not an owner")


class AlreadyExecuted(MultisigError):
    code = "already_executed"

    def __init__(self, tx_id: int):
        self.tx_id = tx_id
        super().__init__(f"Transaction {tx_id} is already executed")


class QuorumNotMet(MultisigError):
    code = "quorum_not_met"

    def __init__(self, tx_id: int, confirmations: int, quorum: int):
        self.tx_id = tx_id
        self.confirmations = confirmations
        self.quorum = quorum
        super().__init__(
            f"Transaction {tx_id} has {confirmations} of {quorum} required confirmations"
        )


class OperationTimeout(MultisigError):
    """A per-record lock could not be acquired in time."""
    code = "timeout"


class LedgerUnavailable(MultisigError):
    """Transient failure reaching the ledger. Safe to retry with backoff."""
    code = "ledger_unavailable"
    retryable = True


class LedgerTimeout(LedgerUnavailable):
    """The ledger did not answer within the configured timeout."""
    code = "ledger_timeout"


class LedgerRejected(MultisigError):
    """The ledger refused the operation. Needs operator review before retrying."""
    code = "ledger_rejected"
