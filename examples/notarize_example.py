#!/usr/bin/env python3
"""
Notarize and verify text against the in-memory ledger.
"""
import logging

from eth_account import Account

from melfina import ContractInterface, Notary, SubmissionEngine
from melfina.ledger import InMemoryLedger


def main():
    """
    Demonstrate the notary end to end without a node.

    This example shows how to:
    1. Build an engine over a local ledger
    2. Store the digest of a text
    3. Check a stored and an unknown text
    """
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    contract = ContractInterface(ContractInterface.default_abi(), address="0x" + "42" * 20)
    ledger = InMemoryLedger(contract)
    engine = SubmissionEngine(ledger, contract, Account.create())
    notary = Notary(engine)

    tx_hash = notary.store("hello")
    print(f"Stored digest {Notary.digest('hello')} in {tx_hash}")

    for text in ("hello", "goodbye"):
        result = notary.check(text)
        print(f"{text!r}: notarized={result.was_previously_stored} tx={result.transaction_hash}")


if __name__ == "__main__":
    main()
