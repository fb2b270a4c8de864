# tests/test_cli.py
from pathlib import Path
from typing import Generator

import pytest
from typer.testing import CliRunner

from multisig.cli.main import EXIT_RETRYABLE, app
from multisig.core.errors import LedgerUnavailable
from multisig.ledger import SQLiteLedger, TREASURY_ADDRESS

runner = CliRunner()

ACCOUNT = "0x" + "5e" * 20


@pytest.fixture
def temp_db(tmp_path: Path) -> Generator[Path, None, None]:
    """Temporary DB file + auto-cleanup."""
    db_path = tmp_path / "test-cli.db"
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def initialized_db(temp_db: Path) -> Path:
    """DB with owners alice, bob, carol and quorum 2."""
    result = runner.invoke(
        app, ["init", "-o", "alice", "-o", "bob", "-o", "carol", "-q", "2", "--db", str(temp_db)]
    )
    assert result.exit_code == 0, result.stdout
    return temp_db


def invoke(db: Path, *args: str):
    return runner.invoke(app, [*args, "--db", str(db)])


def test_init_reports_owner_set(temp_db: Path):
    result = runner.invoke(app, ["init", "-o", "alice", "-o", "bob", "-q", "2", "--db", str(temp_db)])
    assert result.exit_code == 0
    assert "2 owners, quorum 2" in result.stdout


def test_init_rejects_bad_quorum(temp_db: Path):
    result = runner.invoke(app, ["init", "-o", "alice", "-q", "3", "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "invalid_argument" in result.stdout


def test_init_cannot_change_owner_set(initialized_db: Path):
    result = runner.invoke(app, ["init", "-o", "mallory", "-q", "1", "--db", str(initialized_db)])
    assert result.exit_code == 1
    assert "already configured" in result.stdout


def test_commands_need_init(temp_db: Path):
    result = invoke(temp_db, "list-pending")
    assert result.exit_code == 1
    assert "no owner set configured" in result.stdout.lower()
    assert "to get started" in result.stdout.lower()


def test_full_mint_cycle(initialized_db: Path):
    result = invoke(initialized_db, "submit-mint", ACCOUNT, "100")
    assert result.exit_code == 0
    assert "submitted with id 1" in result.stdout

    result = invoke(initialized_db, "confirm", "1", "alice")
    assert result.exit_code == 0
    assert "1 more confirmation(s) needed" in result.stdout

    result = invoke(initialized_db, "execute", "1")
    assert result.exit_code == 1
    assert "quorum_not_met" in result.stdout

    result = invoke(initialized_db, "confirm", "1", "bob")
    assert result.exit_code == 0
    assert "Quorum reached" in result.stdout

    result = invoke(initialized_db, "execute", "1")
    assert result.exit_code == 0
    assert "Transaction 1 executed" in result.stdout

    result = invoke(initialized_db, "execute", "1")
    assert result.exit_code == 1
    assert "already_executed" in result.stdout

    result = invoke(initialized_db, "balance", ACCOUNT)
    assert result.exit_code == 0
    assert "Balance: 100" in result.stdout

    result = invoke(initialized_db, "get", "1")
    assert result.exit_code == 0
    assert "executed" in result.stdout
    assert "alice confirmed at" in result.stdout


def test_confirm_errors(initialized_db: Path):
    invoke(initialized_db, "submit-burn", "5")

    result = invoke(initialized_db, "confirm", "999", "alice")
    assert result.exit_code == 1
    assert "not_found" in result.stdout

    result = invoke(initialized_db, "confirm", "1", "mallory")
    assert result.exit_code == 1
    assert "unknown_owner" in result.stdout


def test_submit_mint_rejects_bad_address(initialized_db: Path):
    result = invoke(initialized_db, "submit-mint", "not-an-address", "10")
    assert result.exit_code == 1
    assert "invalid_argument" in result.stdout


@pytest.mark.parametrize("args", [
    ("submit-burn", "-5"),
    ("submit-mint", ACCOUNT, "-5"),
])
def test_submit_negative_amount_is_invalid_argument(initialized_db: Path, args):
    result = invoke(initialized_db, *args)
    assert result.exit_code == 1
    assert "invalid_argument" in result.stdout
    assert "non-negative" in result.stdout
    assert "No transactions" in invoke(initialized_db, "list").stdout


def test_burn_rejected_by_ledger(initialized_db: Path):
    invoke(initialized_db, "submit-burn", "50")
    invoke(initialized_db, "confirm", "1", "bob")
    invoke(initialized_db, "confirm", "1", "carol")

    result = invoke(initialized_db, "execute", "1")
    assert result.exit_code == 1
    assert "ledger_rejected" in result.stdout

    result = invoke(initialized_db, "list-pending")
    assert result.exit_code == 0
    assert "confirmed" in result.stdout


def test_burn_from_treasury(initialized_db: Path):
    invoke(initialized_db, "submit-mint", TREASURY_ADDRESS, "80")
    invoke(initialized_db, "submit-burn", "30")
    for tx_id in ("1", "2"):
        invoke(initialized_db, "confirm", tx_id, "alice")
        invoke(initialized_db, "confirm", tx_id, "carol")
        assert invoke(initialized_db, "execute", tx_id).exit_code == 0

    result = invoke(initialized_db, "info")
    assert result.exit_code == 0
    assert "Total supply: 50" in result.stdout
    assert "Quorum:       2 of 3" in result.stdout


def test_ledger_unavailable_exits_retryable(initialized_db: Path, monkeypatch):
    def unreachable(self, account, amount, *, tx_id=None):
        raise LedgerUnavailable("node unreachable")

    monkeypatch.setattr(SQLiteLedger, "apply_mint", unreachable)
    invoke(initialized_db, "submit-mint", ACCOUNT, "1")
    invoke(initialized_db, "confirm", "1", "alice")
    invoke(initialized_db, "confirm", "1", "bob")

    result = invoke(initialized_db, "execute", "1")
    assert result.exit_code == EXIT_RETRYABLE
    assert "ledger_unavailable" in result.stdout


def test_list_and_pending(initialized_db: Path):
    result = invoke(initialized_db, "list")
    assert "No transactions found" in result.stdout

    invoke(initialized_db, "submit-mint", ACCOUNT, "7")
    invoke(initialized_db, "submit-burn", "3")

    result = invoke(initialized_db, "list")
    assert result.exit_code == 0
    assert "Transactions" in result.stdout
    assert "mint" in result.stdout
    assert "burn" in result.stdout
    assert "0/2" in result.stdout

    result = invoke(initialized_db, "list-pending")
    assert "Pending Transactions" in result.stdout


def test_global_db_option(initialized_db: Path):
    result = runner.invoke(app, ["--db", str(initialized_db), "info"])
    assert result.exit_code == 0
    assert "alice, bob, carol" in result.stdout


def test_invalid_timeout_env(initialized_db: Path, monkeypatch):
    monkeypatch.setenv("MULTISIG_LEDGER_TIMEOUT", "soon")
    result = invoke(initialized_db, "info")
    assert result.exit_code == 1
    assert "invalid_argument" in result.stdout


def test_audit_valid(initialized_db: Path):
    invoke(initialized_db, "submit-mint", ACCOUNT, "9")
    invoke(initialized_db, "confirm", "1", "alice")
    invoke(initialized_db, "confirm", "1", "bob")
    invoke(initialized_db, "execute", "1")

    result = invoke(initialized_db, "audit")
    assert result.exit_code == 0
    assert "Audit trail is valid" in result.stdout
