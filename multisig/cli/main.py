# multisig/cli/main.py
"""
CLI for submitting, confirming and executing multisig mint/burn proposals.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from multisig.config import EngineSettings, get_db_path
from multisig.core.errors import MultisigError
from multisig.core.types import OwnerSet, TransactionRecord
from multisig.engine.engine import MultisigEngine
from multisig.ledger import SQLiteLedger
from multisig.storage import SQLiteProposalStore
from multisig.verify.verifier import AuditVerifier

# sysexits EX_TEMPFAIL: the caller may retry with backoff
EXIT_RETRYABLE = 75
# negative amounts must reach validation instead of parsing as options
NUMERIC_ARGS = {"ignore_unknown_options": True}

app = typer.Typer(
    name="multisig",
    help="Submit, confirm and execute quorum-gated mint/burn proposals",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def fail(e: MultisigError) -> None:
    console.print(f"[red]✗ {e.code}: {escape(str(e))}[/]")
    raise typer.Exit(EXIT_RETRYABLE if e.retryable else 1)


def open_store(db: Optional[Path]) -> SQLiteProposalStore:
    db_path = get_db_path(db)
    try:
        return SQLiteProposalStore(db_path)
    except sqlite3.Error as e:
        console.print(f"[red]Failed to open database {db_path}: {escape(str(e))}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


@contextmanager
def open_engine(db: Optional[Path]) -> Iterator[MultisigEngine]:
    """Engine over the CLI database; typed errors become exit codes."""
    store = open_store(db)
    ledger = None
    engine = None
    try:
        owners = store.load_owner_set()
        if owners is None:
            console.print(f"[red]No owner set configured in {store.db_path}[/]")
            console.print("[yellow]To get started:[/]")
            console.print("  • multisig init --owner alice --owner bob --owner carol --quorum 2")
            raise typer.Exit(1)
        ledger = SQLiteLedger(store.db_path)
        engine = MultisigEngine(store, owners, ledger, EngineSettings.from_env())
        yield engine
    except MultisigError as e:
        fail(e)
    finally:
        if engine is not None:
            engine.close()
        if ledger is not None:
            ledger.close()
        store.close()


def short(address: Optional[str]) -> str:
    if address is None:
        return "treasury"
    return f"{address[:6]}…{address[-4:]}"


def print_record(record: TransactionRecord, engine: MultisigEngine) -> None:
    status = engine.tracker.status(record)
    count = engine.tracker.count(record)
    confirmed_by = [o for o in engine.owners.owners if o in record.confirmations]

    console.print(f"[bold cyan]#{record.id} {record.tx_type.value.upper()} | {status.value}[/]")
    console.print(f"  account:       {record.account or 'treasury'}")
    console.print(f"  amount:        {record.amount}")
    console.print(
        f"  confirmations: {count}/{engine.tracker.quorum}"
        + (f" ({escape(', '.join(confirmed_by))})" if confirmed_by else "")
    )
    console.print(f"  submitted:     {record.submitted_at}")
    if record.executed:
        console.print(f"  executed:      {record.executed_at}")
        console.print(f"  receipt:       {record.receipt_id}")


def print_table(title: str, records: List[TransactionRecord], engine: MultisigEngine) -> None:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Account")
    table.add_column("Amount", justify="right")
    table.add_column("Confirmations")
    table.add_column("Status")

    for record in records:
        table.add_row(
            str(record.id),
            record.tx_type.value,
            short(record.account),
            str(record.amount),
            f"{engine.tracker.count(record)}/{engine.tracker.quorum}",
            engine.tracker.status(record).value,
        )

    console.print(table)


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides MULTISIG_DB_PATH env var)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity to stderr"),
):
    """Manage multisig mint/burn proposals."""
    ctx.obj = {"db": db}
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def resolve_db(ctx: typer.Context, db: Optional[Path]) -> Optional[Path]:
    if db is not None:
        return db
    return (ctx.obj or {}).get("db")


@app.command()
def init(
    ctx: typer.Context,
    owner: List[str] = typer.Option(..., "--owner", "-o", help="Owner id (repeat for each owner)"),
    quorum: int = typer.Option(..., "--quorum", "-q", help="Confirmations required to execute"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Configure the owner set and quorum. Cannot be changed afterwards."""
    store = open_store(resolve_db(ctx, db))
    try:
        owners = OwnerSet(tuple(owner), quorum)
        store.save_owner_set(owners)
    except MultisigError as e:
        fail(e)
    finally:
        store.close()

    console.print(f"[green]Owner set configured: {len(owners)} owners, quorum {owners.quorum}[/]")
    console.print(f"  {escape(', '.join(owners.owners))}")


@app.command("submit-mint", context_settings=NUMERIC_ARGS)
def submit_mint(
    ctx: typer.Context,
    account: str = typer.Argument(..., help="Address receiving the minted amount"),
    amount: int = typer.Argument(..., help="Amount in the smallest unit"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Propose minting AMOUNT to ACCOUNT."""
    with open_engine(resolve_db(ctx, db)) as engine:
        tx_id = engine.submit_mint(account, amount)
        console.print(f"[green]Mint transaction submitted with id {tx_id}[/]")
        print_record(engine.get_transaction(tx_id), engine)


@app.command("submit-burn", context_settings=NUMERIC_ARGS)
def submit_burn(
    ctx: typer.Context,
    amount: int = typer.Argument(..., help="Amount in the smallest unit"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Burn from this address instead of the treasury"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Propose burning AMOUNT."""
    with open_engine(resolve_db(ctx, db)) as engine:
        tx_id = engine.submit_burn(amount, account)
        console.print(f"[green]Burn transaction submitted with id {tx_id}[/]")
        print_record(engine.get_transaction(tx_id), engine)


@app.command()
def confirm(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Transaction id"),
    owner: str = typer.Argument(..., help="Confirming owner id"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Record OWNER's confirmation of a transaction."""
    with open_engine(resolve_db(ctx, db)) as engine:
        record = engine.confirm_transaction(tx_id, owner)
        console.print(f"[green]Transaction {tx_id} confirmed by {escape(owner)}[/]")
        missing = engine.tracker.missing(record)
        if missing:
            console.print(f"[yellow]{missing} more confirmation(s) needed[/]")
        else:
            console.print("[green]Quorum reached, ready to execute[/]")
        print_record(record, engine)


@app.command()
def execute(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Transaction id"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Apply a confirmed transaction to the ledger."""
    with open_engine(resolve_db(ctx, db)) as engine:
        record = engine.execute_transaction(tx_id)
        console.print(f"[green]Transaction {tx_id} executed[/]")
        print_record(record, engine)


@app.command()
def get(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Transaction id"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show one transaction."""
    with open_engine(resolve_db(ctx, db)) as engine:
        print_record(engine.get_transaction(tx_id), engine)
        times = engine.store.get_confirmation_times(tx_id)
        for owner_id, ts in times.items():
            console.print(f"  • {escape(owner_id)} confirmed at {ts}")


@app.command("list-pending")
def list_pending(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List transactions awaiting confirmation or execution."""
    with open_engine(resolve_db(ctx, db)) as engine:
        records = engine.get_pending()
        if not records:
            console.print("[yellow]No pending transactions.[/]")
            return
        print_table("Pending Transactions", records, engine)


@app.command("list")
def list_all(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List every transaction ever submitted, oldest first."""
    with open_engine(resolve_db(ctx, db)) as engine:
        records = engine.list_transactions()
        if not records:
            console.print("[yellow]No transactions found in database.[/]")
            return
        print_table("Transactions", records, engine)


@app.command()
def balance(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Address to query"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show the ledger balance of ADDRESS."""
    with open_engine(resolve_db(ctx, db)) as engine:
        console.print(f"Balance: {engine.query_balance(address)}")


@app.command()
def info(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show owners, quorum and ledger totals."""
    with open_engine(resolve_db(ctx, db)) as engine:
        console.print(f"Database:     {engine.store.db_path}")
        console.print(f"Owners:       {escape(', '.join(engine.owners.owners))}")
        console.print(f"Quorum:       {engine.owners.quorum} of {len(engine.owners)}")
        console.print(f"Treasury:     {engine.ledger.treasury}")
        console.print(f"Total supply: {engine.total_supply()}")
        console.print(f"Pending:      {len(engine.get_pending())}")


@app.command()
def audit(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Verify the stored audit trail against the owner set and the ledger."""
    with open_engine(resolve_db(ctx, db)) as engine:
        verifier = AuditVerifier(engine.owners, engine.ledger)
        result = verifier.verify_from_storage(engine.store)

        if result.is_valid:
            console.print("[green]✓ Audit trail is valid[/]")
            console.print(f"  {result.message}")
            return

        console.print("[red]✗ Audit failed[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.tx_id}] {failure.category.value}: {escape(failure.message)}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
