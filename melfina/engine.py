"""
SubmissionEngine - signs and broadcasts contract calls to the ledger.

The engine signs every transaction locally with an explicit private key so
it works against hosted nodes that only accept raw transactions. It
retries transient broadcast failures with the next nonce and waits for a
receipt, falling back to polling when the node gives up waiting.
"""
import contextlib
import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3.exceptions import TimeExhausted

from ._rate_limited_log import rate_limited_log
from .contract import ContractInterface
from .exceptions import TransactionError
from .ledger.transport import LedgerTransport
from .models import OperationRequest, SignedPayload, SubmissionOutcome, TxReceipt
from .retry import ErrorClassifier, ErrorKind, default_classifier
from .utils import hexify_receipt, to_hex

logger = logging.getLogger(__name__)

# Fixed fee policy, no dynamic estimation
DEFAULT_GAS_LIMIT = 400000
DEFAULT_GAS_PRICE = 20000000000  # 20 gwei

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_RECEIPT_TIMEOUT = 120

# Process-wide locks serializing nonce assignment per sender address
_sender_locks: Dict[str, threading.RLock] = {}
_sender_locks_lock = threading.RLock()


def _sender_lock(address: str) -> threading.RLock:
    key = address.lower()
    with _sender_locks_lock:
        if key not in _sender_locks:
            _sender_locks[key] = threading.RLock()
        return _sender_locks[key]


class SubmissionEngine:
    """
    Reliable submission of contract calls under nonce contention.

    The engine holds read-only collaborators (transport, contract interface,
    signing account); every call to submit() carries its own retry state.
    """

    def __init__(
        self,
        transport: LedgerTransport,
        contract: ContractInterface,
        account: LocalAccount,
        sender_address: Optional[str] = None,
        chain_id: Optional[int] = None,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        gas_price: int = DEFAULT_GAS_PRICE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        classifier: ErrorClassifier = default_classifier,
        max_retries: Optional[int] = None,
        retry_delay: float = 0.0,
        serialize_submissions: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the SubmissionEngine

        Args:
            transport: Ledger transport used to broadcast and query
            contract: Contract interface used to encode calls
            account: Account holding the private key used for signing
            sender_address: Address whose nonce is queried (defaults to the account's)
            chain_id: Chain id for signatures (queried from the transport if omitted)
            gas_limit: Fixed gas limit for every transaction
            gas_price: Fixed gas price in wei for every transaction
            poll_interval: Seconds between receipt lookups
            receipt_timeout: Seconds to wait for a receipt before falling back to polling
            classifier: Callable deciding whether a broadcast error is retryable
            max_retries: Maximum number of retries per request (None for unbounded)
            retry_delay: Seconds to sleep between retries
            serialize_submissions: Serialize nonce assignment per sender address
            logger: Optional logger instance
        """
        self.transport = transport
        self.contract = contract
        self.account = account
        self.sender_address = sender_address
        self._chain_id = chain_id
        self.gas_limit = gas_limit
        self.gas_price = gas_price
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout
        self.classifier = classifier
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.serialize_submissions = serialize_submissions
        self.logger = logger or logging.getLogger(__name__)

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.transport.chain_id
        return self._chain_id

    def submit(
        self,
        operation: str,
        arguments: Sequence[Any] = (),
        resolve_early: bool = False,
        account: Optional[LocalAccount] = None,
        deploy: bool = False
    ) -> SubmissionOutcome:
        """
        Sign and submit a contract call (or deployment).

        Args:
            operation: Contract function name (informational for deployments)
            arguments: Function or constructor arguments
            resolve_early: Return as soon as the network accepts the transaction
            account: Signing account overriding the engine's own
            deploy: Deploy the contract instead of calling it

        Returns:
            PENDING outcome when resolve_early is set, otherwise the
            CONFIRMED or FAILED outcome from the receipt

        Raises:
            TransactionError: If signing fails
            ValueError: If the operation cannot be encoded
            Exception: Non-retryable broadcast errors, unchanged
        """
        request = OperationRequest(operation=operation, arguments=tuple(arguments), is_deploy=deploy)
        return self.submit_request(request, resolve_early=resolve_early, account=account)

    def submit_request(
        self,
        request: OperationRequest,
        resolve_early: bool = False,
        account: Optional[LocalAccount] = None
    ) -> SubmissionOutcome:
        signer = account or self.account
        sender = self.sender_address if account is None and self.sender_address else signer.address

        lock = _sender_lock(sender) if self.serialize_submissions else contextlib.nullcontext()
        with lock:
            payload, tx_hash = self._broadcast(request, signer, sender)

        if resolve_early:
            return SubmissionOutcome.pending(tx_hash, payload.nonce)

        receipt = self.await_receipt(tx_hash)
        outcome = SubmissionOutcome.from_receipt(receipt, payload.nonce)
        if outcome.reason:
            self.logger.error(f"Function: {request.operation}() {outcome.reason}")
        return outcome

    def _broadcast(self, request: OperationRequest, signer: LocalAccount, sender: str):
        last_nonce: Optional[int] = None
        retries = 0

        while True:
            if last_nonce is None:
                nonce = self.transport.get_transaction_count(sender)
            else:
                nonce = last_nonce + 1
            payload = self.build_payload(request, nonce, signer)

            try:
                tx_hash = self.transport.send_raw_transaction(payload.raw_transaction)
            except Exception as e:
                kind = self.classifier(e)
                if kind is not ErrorKind.RETRY:
                    self.logger.error(f"Function: {request.operation}() failed: {e}")
                    raise
                if self.max_retries is not None and retries >= self.max_retries:
                    self.logger.error(f"Function: {request.operation}() gave up after {retries} retries: {e}")
                    raise
                retries += 1
                last_nonce = nonce
                self.logger.info(f"Transaction known, retrying with nonce {nonce + 1}")
                if self.retry_delay:
                    time.sleep(self.retry_delay)
                continue

            tx_hash = to_hex(tx_hash)
            self.logger.info(f"Function: {request.operation}() {tx_hash}")
            return payload, tx_hash

    def build_payload(self, request: OperationRequest, nonce: int, signer: LocalAccount) -> SignedPayload:
        """
        Encode, sign and serialize one attempt of a request.

        Raises:
            ValueError: If the call cannot be encoded or no contract address is set
            TransactionError: If signing fails
        """
        tx: Dict[str, Any] = {
            "nonce": nonce,
            "gas": self.gas_limit,
            "gasPrice": self.gas_price,
            "value": 0,
            "chainId": self.chain_id,
        }
        if request.is_deploy:
            tx["data"] = self.contract.encode_deploy(request.arguments)
        else:
            if not self.contract.address:
                raise ValueError("Contract address not provided")
            tx["data"] = self.contract.encode_call(request.operation, request.arguments)
            tx["to"] = self.contract.address

        self.logger.debug(f"Signing {request.operation}() with nonce {nonce}")
        try:
            signed = signer.sign_transaction(tx)
        except Exception as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise TransactionError(f"Failed to sign transaction: {str(e)}")

        return SignedPayload(
            data=tx["data"],
            gas_limit=self.gas_limit,
            gas_price=self.gas_price,
            nonce=nonce,
            chain_id=tx["chainId"],
            to=tx.get("to"),
            raw_transaction=bytes(signed.rawTransaction),
            tx_hash=to_hex(signed.hash)
        )

    def await_receipt(self, tx_hash: str) -> TxReceipt:
        """
        Wait for a transaction to be mined.

        Waits up to receipt_timeout seconds through the transport, then
        keeps polling without a bound.
        """
        try:
            receipt = self.transport.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval
            )
        except TimeExhausted:
            self.logger.info("Transaction not mined, polling")
            return self.poll_receipt(tx_hash)
        return self._convert_receipt(receipt)

    def poll_receipt(self, tx_hash: str) -> TxReceipt:
        """Check for a receipt every poll_interval seconds until one appears."""
        while True:
            receipt = self.transport.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return self._convert_receipt(receipt)
            rate_limited_log(
                f"Waiting for receipt of {tx_hash}",
                level="info",
                logger_instance=self.logger
            )
            time.sleep(self.poll_interval)

    def _convert_receipt(self, receipt: Mapping[str, Any]) -> TxReceipt:
        return TxReceipt.model_validate(hexify_receipt(receipt))
