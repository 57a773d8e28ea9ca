"""
Tests for the SubmissionEngine retry and confirmation protocol.
"""
import threading
import time
from unittest.mock import MagicMock

import pytest
import rlp
from eth_utils import big_endian_to_int
from web3.exceptions import TimeExhausted

from melfina.contract import ContractInterface
from melfina.engine import DEFAULT_GAS_LIMIT, DEFAULT_GAS_PRICE, SubmissionEngine
from melfina.exceptions import TransactionError
from melfina.models import OperationRequest, SubmissionStatus
from melfina.retry import ErrorKind
from melfina.utils import sha256_hex
from conftest import TEST_BYTECODE, TEST_CONTRACT, TEST_TX_HASH, make_receipt

DIGEST = sha256_hex("hello")


def sent_nonces(transport):
    """Nonces of every raw transaction handed to the transport"""
    return [
        big_endian_to_int(rlp.decode(call.args[0])[0])
        for call in transport.send_raw_transaction.call_args_list
    ]


def test_fresh_request_queries_nonce(mock_transport, contract, account):
    """A fresh request takes its nonce from the account's transaction count"""
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST])

    assert outcome.status is SubmissionStatus.CONFIRMED
    assert outcome.nonce == 7
    assert outcome.tx_hash == TEST_TX_HASH
    assert outcome.receipt.block_number == 12345
    mock_transport.get_transaction_count.assert_called_once_with(account.address)
    assert sent_nonces(mock_transport) == [7]


def test_sender_address_used_for_nonce(mock_transport, contract, account):
    """The configured sender address is the one queried for its nonce"""
    sender = "0x0000000000000000000000000000000000000001"
    engine = SubmissionEngine(mock_transport, contract, account, sender_address=sender)

    engine.submit("notarize", [DIGEST], resolve_early=True)

    mock_transport.get_transaction_count.assert_called_once_with(sender)


def test_underpriced_retries_with_next_nonce(mock_transport, contract, account):
    """Underpriced on nonce N completes with N+1 and never reuses N"""
    mock_transport.send_raw_transaction.side_effect = [
        ValueError({"code": -32000, "message": "replacement transaction underpriced"}),
        TEST_TX_HASH,
    ]
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST])

    assert outcome.status is SubmissionStatus.CONFIRMED
    assert outcome.nonce == 8
    assert sent_nonces(mock_transport) == [7, 8]
    # Retries increment locally instead of asking the node again
    assert mock_transport.get_transaction_count.call_count == 1


def test_known_transaction_retries(mock_transport, contract, account):
    """A 'known transaction' error is retried with the next nonce"""
    mock_transport.send_raw_transaction.side_effect = [
        ValueError("known transaction: 1234"),
        ValueError("known transaction: 5678"),
        TEST_TX_HASH,
    ]
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST], resolve_early=True)

    assert outcome.nonce == 9
    assert sent_nonces(mock_transport) == [7, 8, 9]


def test_retry_is_unbounded_by_default(mock_transport, contract, account):
    """Without max_retries the engine keeps going until a broadcast succeeds"""
    mock_transport.send_raw_transaction.side_effect = (
        [ValueError("transaction underpriced")] * 25 + [TEST_TX_HASH]
    )
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST], resolve_early=True)

    assert outcome.nonce == 7 + 25
    assert sent_nonces(mock_transport) == list(range(7, 33))


def test_max_retries_reraises_last_error(mock_transport, contract, account):
    """With a retry cap the last retryable error surfaces once the cap is hit"""
    mock_transport.send_raw_transaction.side_effect = ValueError("transaction underpriced")
    engine = SubmissionEngine(mock_transport, contract, account, max_retries=2)

    with pytest.raises(ValueError, match="underpriced"):
        engine.submit("notarize", [DIGEST])

    assert sent_nonces(mock_transport) == [7, 8, 9]


def test_retry_delay_sleeps_between_attempts(mock_transport, contract, account, monkeypatch):
    mock_sleep = MagicMock()
    monkeypatch.setattr(time, "sleep", mock_sleep)
    mock_transport.send_raw_transaction.side_effect = [ValueError("transaction underpriced"), TEST_TX_HASH]
    engine = SubmissionEngine(mock_transport, contract, account, retry_delay=0.5)

    engine.submit("notarize", [DIGEST], resolve_early=True)

    mock_sleep.assert_called_once_with(0.5)


def test_fatal_error_propagates_unchanged(mock_transport, contract, account, caplog):
    """Non-retryable errors reach the caller as the same object, after one attempt"""
    error = ValueError("insufficient funds for gas * price + value")
    mock_transport.send_raw_transaction.side_effect = error
    engine = SubmissionEngine(mock_transport, contract, account)

    caplog.set_level("ERROR")
    with pytest.raises(ValueError) as exc_info:
        engine.submit("notarize", [DIGEST], resolve_early=True)

    assert exc_info.value is error
    assert mock_transport.send_raw_transaction.call_count == 1
    assert any("insufficient funds" in msg for msg in caplog.messages)


def test_custom_classifier(mock_transport, contract, account):
    """The retry decision is pluggable"""
    mock_transport.send_raw_transaction.side_effect = [ValueError("nonce too low"), TEST_TX_HASH]

    def classifier(error):
        return ErrorKind.RETRY if "nonce too low" in str(error) else ErrorKind.FATAL

    engine = SubmissionEngine(mock_transport, contract, account, classifier=classifier)
    outcome = engine.submit("notarize", [DIGEST], resolve_early=True)

    assert outcome.nonce == 8


def test_resolve_early_returns_hash_without_receipt(mock_transport, contract, account):
    """Early resolution hands back the hash as soon as the network accepts it"""
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST], resolve_early=True)

    assert outcome.status is SubmissionStatus.PENDING
    assert outcome.tx_hash == TEST_TX_HASH
    assert outcome.receipt is None
    mock_transport.wait_for_transaction_receipt.assert_not_called()
    mock_transport.get_transaction_receipt.assert_not_called()


def test_resolve_early_ignores_receipt_already_available(mock_transport, contract, account):
    """Even when a receipt would already be available the result is the hash"""
    mock_transport.get_transaction_receipt.return_value = make_receipt()
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("notarize", [DIGEST], resolve_early=True)

    assert outcome.status is SubmissionStatus.PENDING
    assert outcome.receipt is None


def test_polls_after_receipt_timeout(mock_transport, contract, account, caplog):
    """When waiting times out the engine polls until the receipt appears"""
    mock_transport.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
    mock_transport.get_transaction_receipt.side_effect = [None, None, make_receipt()]
    engine = SubmissionEngine(mock_transport, contract, account)

    caplog.set_level("INFO")
    outcome = engine.submit("verify", [DIGEST])

    assert outcome.status is SubmissionStatus.CONFIRMED
    assert mock_transport.get_transaction_receipt.call_count == 3
    assert "Transaction not mined, polling" in caplog.messages
    # Identical waiting messages are rate limited
    assert sum("Waiting for receipt" in msg for msg in caplog.messages) == 1


def test_reverted_receipt_is_failed_outcome(mock_transport, contract, account):
    mock_transport.wait_for_transaction_receipt.return_value = make_receipt(status=0)
    engine = SubmissionEngine(mock_transport, contract, account)

    outcome = engine.submit("verify", [DIGEST])

    assert outcome.status is SubmissionStatus.FAILED
    assert "reverted" in outcome.reason
    assert outcome.receipt.status == 0


class BadSigner:
    address = "0x0000000000000000000000000000000000000002"

    def sign_transaction(self, _):
        raise RuntimeError("nope")


def test_signing_failure_raises_transaction_error(mock_transport, contract):
    engine = SubmissionEngine(mock_transport, contract, BadSigner())

    with pytest.raises(TransactionError, match="Failed to sign transaction"):
        engine.submit("notarize", [DIGEST])

    mock_transport.send_raw_transaction.assert_not_called()


def test_call_without_contract_address(mock_transport, account):
    contract = ContractInterface(ContractInterface.default_abi())
    engine = SubmissionEngine(mock_transport, contract, account)

    with pytest.raises(ValueError, match="Contract address not provided"):
        engine.submit("notarize", [DIGEST])


def test_unknown_operation(mock_transport, contract, account):
    engine = SubmissionEngine(mock_transport, contract, account)

    with pytest.raises(ValueError, match="Unknown contract function"):
        engine.submit("destroy", [])


class TestBuildPayload:
    """Tests for transaction envelope construction."""

    def test_call_payload(self, mock_transport, contract, account):
        engine = SubmissionEngine(mock_transport, contract, account)
        request = OperationRequest(operation="notarize", arguments=(DIGEST,))

        payload = engine.build_payload(request, 3, account)

        assert payload.nonce == 3
        assert payload.gas_limit == DEFAULT_GAS_LIMIT
        assert payload.gas_price == DEFAULT_GAS_PRICE
        assert payload.chain_id == 1337
        assert payload.to == contract.address
        assert payload.data == contract.encode_call("notarize", [DIGEST])
        assert payload.tx_hash.startswith("0x") and len(payload.tx_hash) == 66

    def test_deploy_payload_has_no_recipient(self, mock_transport, contract, account):
        engine = SubmissionEngine(mock_transport, contract, account)
        request = OperationRequest(operation="deploy", is_deploy=True)

        payload = engine.build_payload(request, 0, account)

        assert payload.to is None
        assert payload.data.startswith(TEST_BYTECODE)
        assert rlp.decode(payload.raw_transaction)[3] == b""

    def test_only_nonce_varies_between_attempts(self, mock_transport, contract, account):
        engine = SubmissionEngine(mock_transport, contract, account, gas_price=1, gas_limit=50000)
        request = OperationRequest(operation="notarize", arguments=(DIGEST,))

        first = engine.build_payload(request, 1, account)
        second = engine.build_payload(request, 2, account)

        assert first.model_dump(include={"data", "gas_limit", "gas_price", "to"}) == \
            second.model_dump(include={"data", "gas_limit", "gas_price", "to"})
        assert first.tx_hash != second.tx_hash
        assert (first.gas_limit, first.gas_price) == (50000, 1)

    def test_chain_id_queried_once(self, mock_transport, contract, account):
        engine = SubmissionEngine(mock_transport, contract, account)
        assert engine.chain_id == 1337

        explicit = SubmissionEngine(mock_transport, contract, account, chain_id=5)
        assert explicit.chain_id == 5


def test_concurrent_submissions_get_distinct_nonces(ledger, contract, account):
    """Submissions from one key are serialized so no two share a nonce"""
    engine = SubmissionEngine(ledger, contract, account)
    outcomes = []
    errors = []

    def worker(i):
        try:
            outcomes.append(engine.submit("notarize", [sha256_hex(f"text {i}")], resolve_early=True))
        except Exception as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(o.nonce for o in outcomes) == [0, 1, 2, 3, 4]
    assert ledger.get_transaction_count(account.address) == 5
