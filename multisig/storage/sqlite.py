# multisig/storage/sqlite.py
import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional

from multisig.config import DEFAULT_DB_NAME, ENV_DB_PATH
from multisig.core.canon import canonical_json_str, payload_hash
from multisig.core.errors import AlreadyExecuted, InvalidArgument, NotFound, OperationTimeout
from multisig.core.types import OwnerSet, TransactionRecord, TxType, utc_now
from . import ProposalStore


class SQLiteProposalStore(ProposalStore):
    """SQLite persistent registry. Safe to share between threads and processes."""

    def __init__(self, db_path: str | Path | None = None, busy_timeout: float = 10.0):
        super().__init__()
        if db_path is None:
            env_path = os.environ.get(ENV_DB_PATH)
            db_path = env_path if env_path else Path.cwd() / DEFAULT_DB_NAME

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self.busy_timeout = busy_timeout
        self._mutex = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        self._conn = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,
            timeout=self.busy_timeout,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_schema()

    def _create_schema(self):
        # amounts are TEXT: token quantities routinely exceed 64 bits
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                tx_type         TEXT    NOT NULL,
                account         TEXT,
                amount          TEXT    NOT NULL,
                submitted_at    TEXT    NOT NULL,
                canonical_json  TEXT    NOT NULL,
                payload_hash    TEXT    NOT NULL,
                executed        INTEGER NOT NULL DEFAULT 0,
                executed_at     TEXT,
                receipt_id      TEXT
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS confirmations (
                tx_id           INTEGER NOT NULL REFERENCES transactions(id),
                owner_id        TEXT    NOT NULL,
                confirmed_at    TEXT    NOT NULL,
                PRIMARY KEY (tx_id, owner_id)
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS owners (
                position        INTEGER PRIMARY KEY,
                owner_id        TEXT    NOT NULL UNIQUE
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key             TEXT PRIMARY KEY,
                value           TEXT NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_executed ON transactions(executed, id)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE takes the database write lock up front, so a
        read-check-write sequence is atomic across processes as well."""
        with self._mutex:
            conn = self.conn
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise OperationTimeout(f"Database busy: {e}") from e
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _insert(self, tx_type: TxType, account: Optional[str], amount: int) -> int:
        submitted_at = utc_now()
        with self._write() as conn:
            cursor = conn.execute("""
                INSERT INTO transactions
                (tx_type, account, amount, submitted_at, canonical_json, payload_hash)
                VALUES (?, ?, ?, ?, '', '')
            """, (tx_type.value, account, str(amount), submitted_at))
            tx_id = cursor.lastrowid

            record = TransactionRecord(
                id=tx_id,
                tx_type=tx_type,
                account=account,
                amount=amount,
                submitted_at=submitted_at,
            )
            payload = record.payload()
            conn.execute(
                "UPDATE transactions SET canonical_json = ?, payload_hash = ? WHERE id = ?",
                (canonical_json_str(payload), payload_hash(payload), tx_id),
            )
        return tx_id

    def _confirmations(self, tx_id: Optional[int] = None) -> Dict[int, FrozenSet[str]]:
        if tx_id is None:
            cursor = self.conn.execute("SELECT tx_id, owner_id FROM confirmations")
        else:
            cursor = self.conn.execute(
                "SELECT tx_id, owner_id FROM confirmations WHERE tx_id = ?", (tx_id,)
            )
        grouped: Dict[int, set] = {}
        for tid, owner_id in cursor:
            grouped.setdefault(tid, set()).add(owner_id)
        return {tid: frozenset(owners) for tid, owners in grouped.items()}

    @staticmethod
    def _to_record(row, confirmations: FrozenSet[str]) -> TransactionRecord:
        tx_id, cjson, phash, executed, executed_at, receipt_id = row
        # payload fields come from the canonical form that was hashed
        payload = json.loads(cjson)
        return TransactionRecord(
            id=tx_id,
            tx_type=TxType(payload["tx_type"]),
            account=payload["account"],
            amount=int(payload["amount"]),
            submitted_at=payload["submitted_at"],
            payload_hash=phash,
            executed=bool(executed),
            confirmations=confirmations,
            executed_at=executed_at,
            receipt_id=receipt_id,
        )

    def get(self, tx_id: int) -> TransactionRecord:
        with self._mutex:
            row = self.conn.execute("""
                SELECT id, canonical_json, payload_hash, executed, executed_at, receipt_id
                FROM transactions WHERE id = ?
            """, (tx_id,)).fetchone()
            if row is None:
                raise NotFound(tx_id)
            confirmations = self._confirmations(tx_id).get(tx_id, frozenset())
        return self._to_record(row, confirmations)

    def list(self) -> List[TransactionRecord]:
        with self._mutex:
            rows = self.conn.execute("""
                SELECT id, canonical_json, payload_hash, executed, executed_at, receipt_id
                FROM transactions ORDER BY id ASC
            """).fetchall()
            confirmations = self._confirmations()
        return [self._to_record(row, confirmations.get(row[0], frozenset())) for row in rows]

    def add_confirmation(self, tx_id: int, owner_id: str) -> TransactionRecord:
        with self._write() as conn:
            row = conn.execute(
                "SELECT executed FROM transactions WHERE id = ?", (tx_id,)
            ).fetchone()
            if row is None:
                raise NotFound(tx_id)
            if row[0]:
                raise AlreadyExecuted(tx_id)
            conn.execute("""
                INSERT OR IGNORE INTO confirmations (tx_id, owner_id, confirmed_at)
                VALUES (?, ?, ?)
            """, (tx_id, owner_id, utc_now()))
        return self.get(tx_id)

    def mark_executed(self, tx_id: int, receipt_id: str) -> TransactionRecord:
        with self._write() as conn:
            cursor = conn.execute("""
                UPDATE transactions SET executed = 1, executed_at = ?, receipt_id = ?
                WHERE id = ? AND executed = 0
            """, (utc_now(), receipt_id, tx_id))
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM transactions WHERE id = ?", (tx_id,)
                ).fetchone()
                if exists is None:
                    raise NotFound(tx_id)
                raise AlreadyExecuted(tx_id)
        return self.get(tx_id)

    def get_confirmation_times(self, tx_id: int) -> Dict[str, str]:
        """owner_id → ISO timestamp of that owner's first confirmation."""
        with self._mutex:
            cursor = self.conn.execute(
                "SELECT owner_id, confirmed_at FROM confirmations WHERE tx_id = ? ORDER BY confirmed_at",
                (tx_id,),
            )
            return {owner_id: ts for owner_id, ts in cursor}

    def save_owner_set(self, owners: OwnerSet) -> None:
        with self._write() as conn:
            existing = self._read_owner_set(conn)
            if existing is not None:
                if existing != owners:
                    raise InvalidArgument(
                        f"A different owner set is already configured in {self.db_path}"
                    )
                return
            conn.executemany(
                "INSERT INTO owners (position, owner_id) VALUES (?, ?)",
                list(enumerate(owners.owners)),
            )
            conn.execute(
                "INSERT INTO settings (key, value) VALUES ('quorum', ?)", (str(owners.quorum),)
            )

    def load_owner_set(self) -> Optional[OwnerSet]:
        with self._mutex:
            return self._read_owner_set(self.conn)

    @staticmethod
    def _read_owner_set(conn: sqlite3.Connection) -> Optional[OwnerSet]:
        owners = [row[0] for row in conn.execute("SELECT owner_id FROM owners ORDER BY position")]
        row = conn.execute("SELECT value FROM settings WHERE key = 'quorum'").fetchone()
        if not owners or row is None:
            return None
        return OwnerSet(tuple(owners), int(row[0]))

    def close(self) -> None:
        with self._mutex:
            if self._conn:
                self._conn.close()
                self._conn = None
