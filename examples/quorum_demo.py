# examples/quorum_demo.py
# Run with: python examples/quorum_demo.py
#
# Three owners, two confirmations required. An event subscriber plays the
# role of the automated trigger and executes proposals as soon as they reach quorum.

import logging

from multisig import (
    AlreadyExecuted,
    EventKind,
    InMemoryLedger,
    MemoryProposalStore,
    MultisigEngine,
    OwnerSet,
)
from multisig.ledger import TREASURY_ADDRESS

RECIPIENT = "0x" + "42" * 20


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    owners = OwnerSet(("alice", "bob", "carol"), quorum=2)
    ledger = InMemoryLedger({TREASURY_ADDRESS: 500})

    with MultisigEngine(MemoryProposalStore(), owners, ledger) as engine:

        def execute_on_quorum(event):
            if event.quorum_reached:
                engine.execute_transaction(event.tx_id)

        engine.subscribe(execute_on_quorum, kinds=[EventKind.CONFIRMED])

        mint = engine.submit_mint(RECIPIENT, 100)
        burn = engine.submit_burn(50)

        engine.confirm_transaction(mint, "alice")
        engine.confirm_transaction(burn, "bob")
        print(f"Pending: {[r.id for r in engine.get_pending()]}")

        engine.confirm_transaction(mint, "carol")    # quorum → executes
        engine.confirm_transaction(burn, "alice")    # quorum → executes

        try:
            engine.confirm_transaction(mint, "bob")
        except AlreadyExecuted as e:
            print(f"Late confirmation refused: {e}")

        print(f"Recipient balance: {engine.query_balance(RECIPIENT)}")
        print(f"Treasury balance:  {engine.query_balance(TREASURY_ADDRESS)}")
        print(f"Total supply:      {engine.total_supply()}")
