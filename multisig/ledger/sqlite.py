# multisig/ledger/sqlite.py
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from multisig.core.errors import LedgerRejected, LedgerUnavailable
from multisig.core.types import TxType, normalize_address, validate_amount
from . import TREASURY_ADDRESS, Ledger, Receipt, replayed


class SQLiteLedger(Ledger):
    """
    Local ledger simulator persisted in SQLite.
    Lets the operator CLI run the whole submit → confirm → execute cycle
    across separate invocations without a real chain behind it.
    """

    def __init__(self, db_path: str | Path, treasury: str = TREASURY_ADDRESS, busy_timeout: float = 10.0):
        self.db_path = Path(db_path).resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.treasury = normalize_address(treasury)
        self._mutex = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,
            timeout=busy_timeout,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_balances (
                address     TEXT PRIMARY KEY,
                amount      TEXT NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_receipts (
                tx_id       INTEGER PRIMARY KEY,
                receipt_id  TEXT    NOT NULL UNIQUE,
                tx_type     TEXT    NOT NULL,
                account     TEXT    NOT NULL,
                amount      TEXT    NOT NULL,
                applied_at  TEXT    NOT NULL
            )
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LedgerUnavailable("Ledger connection is closed")
        return self._conn

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._mutex:
            conn = self.conn
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                # "database is locked" after busy_timeout
                raise LedgerUnavailable(f"Ledger busy: {e}") from e
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _balance(self, conn: sqlite3.Connection, address: str) -> int:
        row = conn.execute(
            "SELECT amount FROM ledger_balances WHERE address = ?", (address,)
        ).fetchone()
        return int(row[0]) if row else 0

    def _set_balance(self, conn: sqlite3.Connection, address: str, amount: int) -> None:
        conn.execute("""
            INSERT INTO ledger_balances (address, amount) VALUES (?, ?)
            ON CONFLICT(address) DO UPDATE SET amount = excluded.amount
        """, (address, str(amount)))

    def _existing(self, conn: sqlite3.Connection, tx_id: Optional[int]) -> Optional[Receipt]:
        if tx_id is None:
            return None
        row = conn.execute("""
            SELECT receipt_id, tx_id, tx_type, account, amount, applied_at
            FROM ledger_receipts WHERE tx_id = ?
        """, (tx_id,)).fetchone()
        if row is None:
            return None
        receipt_id, tid, tx_type, account, amount, applied_at = row
        return Receipt(receipt_id, tid, TxType(tx_type), account, int(amount), applied_at)

    def _store_receipt(self, conn: sqlite3.Connection, receipt: Receipt) -> Receipt:
        if receipt.tx_id is not None:
            conn.execute("""
                INSERT INTO ledger_receipts
                (tx_id, receipt_id, tx_type, account, amount, applied_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                receipt.tx_id, receipt.receipt_id, receipt.tx_type.value,
                receipt.account, str(receipt.amount), receipt.applied_at,
            ))
        return receipt

    def apply_mint(self, account: str, amount: int, *, tx_id: Optional[int] = None) -> Receipt:
        account = normalize_address(account)
        validate_amount(amount)
        with self._write() as conn:
            existing = self._existing(conn, tx_id)
            if existing is not None:
                return replayed(existing, TxType.MINT, account, amount)
            self._set_balance(conn, account, self._balance(conn, account) + amount)
            return self._store_receipt(conn, Receipt.issue(tx_id, TxType.MINT, account, amount))

    def apply_burn(
        self, amount: int, account: Optional[str] = None, *, tx_id: Optional[int] = None
    ) -> Receipt:
        source = self.treasury if account is None else normalize_address(account)
        validate_amount(amount)
        with self._write() as conn:
            existing = self._existing(conn, tx_id)
            if existing is not None:
                return replayed(existing, TxType.BURN, source, amount)
            balance = self._balance(conn, source)
            if balance < amount:
                raise LedgerRejected(
                    f"Cannot burn {amount} from {source}: balance is {balance}"
                )
            self._set_balance(conn, source, balance - amount)
            return self._store_receipt(conn, Receipt.issue(tx_id, TxType.BURN, source, amount))

    def query_balance(self, address: str) -> int:
        address = normalize_address(address)
        with self._mutex:
            return self._balance(self.conn, address)

    def total_supply(self) -> int:
        with self._mutex:
            return sum(int(row[0]) for row in self.conn.execute("SELECT amount FROM ledger_balances"))

    def find_receipt(self, tx_id: int) -> Optional[Receipt]:
        with self._mutex:
            return self._existing(self.conn, tx_id)

    def close(self) -> None:
        with self._mutex:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
