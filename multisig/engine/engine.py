# multisig/engine/engine.py
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Iterable, List, Optional

from multisig.config import EngineSettings
from multisig.core.errors import (
    AlreadyExecuted,
    LedgerRejected,
    LedgerTimeout,
    MultisigError,
    QuorumNotMet,
)
from multisig.core.types import OwnerSet, TransactionRecord, TxStatus, TxType
from multisig.engine.events import Callback, EngineEvent, EventBus, EventKind, Subscription
from multisig.engine.tracker import ConfirmationTracker
from multisig.ledger import Ledger, Receipt
from multisig.storage import ProposalStore

logger = logging.getLogger(__name__)


class MultisigEngine:
    """
    Drives each proposal through submit → confirm → execute.

    State per record: PENDING → CONFIRMED (derived: quorum reached) → EXECUTED.
    Confirm and execute on the same id are serialized by the store's per-record
    lock; the ledger is called at most once per successful execution.
    """

    def __init__(
        self,
        store: ProposalStore,
        owners: OwnerSet,
        ledger: Ledger,
        settings: Optional[EngineSettings] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings or EngineSettings()
        store.save_owner_set(owners)
        self.tracker = ConfirmationTracker(owners, store)
        self.events = EventBus()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.settings.ledger_timeout is not None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="multisig-ledger")

    @property
    def owners(self) -> OwnerSet:
        return self.tracker.owners

    # ── submission

    def submit_mint(self, account: str, amount: int) -> int:
        return self._submit(TxType.MINT, account, amount)

    def submit_burn(self, amount: int, account: Optional[str] = None) -> int:
        return self._submit(TxType.BURN, account, amount)

    def _submit(self, tx_type: TxType, account: Optional[str], amount: int) -> int:
        tx_id = self.store.submit(tx_type, account, amount)
        self.events.publish(EngineEvent(EventKind.SUBMITTED, tx_id, tx_type))
        return tx_id

    # ── confirmation

    def confirm_transaction(self, tx_id: int, owner_id: str) -> TransactionRecord:
        with self.store.record_lock(tx_id, self.settings.lock_timeout):
            before = self.store.get(tx_id)
            record = self.tracker.confirm(before, owner_id)

        if len(record.confirmations) > len(before.confirmations):
            reached = self.tracker.has_quorum(record)
            logger.info(
                "[multisig] %s confirmed transaction %s (%d/%d)",
                owner_id, tx_id, self.tracker.count(record), self.tracker.quorum,
            )
            self.events.publish(EngineEvent(
                EventKind.CONFIRMED, tx_id, record.tx_type,
                owner_id=owner_id, quorum_reached=reached,
            ))
        return record

    # ── execution

    def execute_transaction(self, tx_id: int) -> TransactionRecord:
        with self.store.record_lock(tx_id, self.settings.lock_timeout):
            record = self.store.get(tx_id)
            if record.executed:
                raise AlreadyExecuted(tx_id)
            if not self.tracker.has_quorum(record):
                raise QuorumNotMet(tx_id, self.tracker.count(record), self.tracker.quorum)

            receipt = self._apply(record)
            try:
                record = self.store.mark_executed(tx_id, receipt.receipt_id)
            except AlreadyExecuted:
                # another process won the race; the ledger answered it with the same receipt
                raise
            except Exception:
                logger.error(
                    "[multisig] Ledger applied transaction %s (receipt %s) but marking it "
                    "executed failed; retry execute to reconcile",
                    tx_id, receipt.receipt_id,
                )
                raise

        logger.info("[multisig] Executed transaction %s (receipt %s)", tx_id, receipt.receipt_id)
        self.events.publish(EngineEvent(
            EventKind.EXECUTED, tx_id, record.tx_type,
            quorum_reached=True, receipt_id=receipt.receipt_id,
        ))
        return record

    def _apply(self, record: TransactionRecord) -> Receipt:
        if record.tx_type is TxType.MINT:
            call, args = self.ledger.apply_mint, (record.account, record.amount)
        else:
            call, args = self.ledger.apply_burn, (record.amount, record.account)

        try:
            if self._executor is None:
                return call(*args, tx_id=record.id)
            future = self._executor.submit(call, *args, tx_id=record.id)
            try:
                return future.result(timeout=self.settings.ledger_timeout)
            except FutureTimeout:
                # a call still queued behind busy workers must never reach the ledger
                future.cancel()
                raise LedgerTimeout(
                    f"Ledger did not answer within {self.settings.ledger_timeout}s "
                    f"for transaction {record.id}"
                ) from None
        except MultisigError as e:
            logger.warning("[multisig] Ledger call for transaction %s failed: %s", record.id, e)
            raise
        except Exception as e:
            logger.warning("[multisig] Ledger call for transaction %s failed: %s", record.id, e)
            raise LedgerRejected(f"Ledger failed on transaction {record.id}: {e}") from e

    # ── queries

    def get_transaction(self, tx_id: int) -> TransactionRecord:
        return self.store.get(tx_id)

    def list_transactions(self) -> List[TransactionRecord]:
        return self.store.list()

    def get_pending(self) -> List[TransactionRecord]:
        """Un-executed records, oldest first."""
        return self.store.pending()

    def status(self, tx_id: int) -> TxStatus:
        return self.tracker.status(self.store.get(tx_id))

    def has_quorum(self, tx_id: int) -> bool:
        return self.tracker.has_quorum(self.store.get(tx_id))

    def query_balance(self, address: str) -> int:
        return self.ledger.query_balance(address)

    def total_supply(self) -> int:
        return self.ledger.total_supply()

    # ── subscriptions

    def subscribe(self, callback: Callback, kinds: Optional[Iterable[EventKind]] = None) -> Subscription:
        return self.events.subscribe(callback, kinds)

    def close(self) -> None:
        if self._executor is not None:
            # a timed-out ledger call may still be running; queued ones are dropped
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
