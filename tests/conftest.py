"""
Pytest fixtures for the Melfina tests.
"""
import time
from unittest.mock import MagicMock

import pytest
from eth_account import Account

from melfina._rate_limited_log import reset_rate_limits
from melfina.contract import ContractInterface
from melfina.engine import SubmissionEngine, _sender_locks
from melfina.ledger.memory import InMemoryLedger
from melfina.ledger.transport import LedgerTransport
from melfina.notary import Notary

# Constants for testing
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_CONTRACT = "0x1234567890123456789012345678901234567890"
TEST_CHAIN_ID = 1337
TEST_TX_HASH = "0x" + "ab" * 32
# Minimal runtime bytecode; the in-memory ledger never executes it
TEST_BYTECODE = "0x6080604052348015600f57600080fd5b50603f80601d6000396000f3fe"


@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    """Make time.sleep instantaneous so polling and retries don't slow the suite down"""
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _fresh_state():
    """Forget rate-limited log entries and per-sender locks between tests"""
    reset_rate_limits()
    _sender_locks.clear()
    yield


@pytest.fixture
def account():
    """Create a deterministic test account"""
    return Account.from_key(TEST_PRIV_KEY)


@pytest.fixture
def contract():
    """ProofOfExistence interface bound to the test address"""
    return ContractInterface(
        ContractInterface.default_abi(),
        address=TEST_CONTRACT,
        bytecode=TEST_BYTECODE
    )


@pytest.fixture
def ledger(contract):
    """In-memory ledger with the contract already deployed"""
    return InMemoryLedger(contract, chain_id=TEST_CHAIN_ID)


@pytest.fixture
def engine(ledger, contract, account):
    return SubmissionEngine(ledger, contract, account)


@pytest.fixture
def notary(engine):
    return Notary(engine)


@pytest.fixture
def mock_transport():
    """Transport double: nonce 7, every broadcast accepted, receipts mined"""
    transport = MagicMock(spec=LedgerTransport)
    transport.chain_id = TEST_CHAIN_ID
    transport.get_transaction_count.return_value = 7
    transport.send_raw_transaction.return_value = TEST_TX_HASH
    transport.wait_for_transaction_receipt.return_value = make_receipt()
    return transport


def make_receipt(tx_hash=TEST_TX_HASH, status=1, logs=None, contract_address=None):
    """Build a web3-shaped receipt dict"""
    return {
        "transactionHash": bytes.fromhex(tx_hash[2:]),
        "blockNumber": 12345,
        "blockHash": bytes.fromhex("abcdef1234567890" * 4),
        "status": status,
        "gasUsed": 85000,
        "from": "0xFC2077CA7F403cBECA41B1B0F62D91B5EA631B5E",
        "to": TEST_CONTRACT,
        "contractAddress": contract_address,
        "logs": logs or [],
    }
