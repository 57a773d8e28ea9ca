"""
Notary - store and check text digests on the ledger.
"""
import logging
from typing import Any, Optional, Sequence

from .config import NotaryConfig
from .contract import ContractInterface
from .engine import SubmissionEngine
from .exceptions import ReceiptDecodeError, TransactionError
from .keyfile import recover_account
from .ledger.transport import get_transport
from .models import SubmissionStatus, VerificationResult
from .utils import redact, sha256_hex


class Notary:
    """
    Facade over the submission engine for proof-of-existence.

    Only the SHA-256 digest of a text ever reaches the ledger.
    """

    NOTARIZE = "notarize"
    VERIFY = "verify"
    VERIFIED_EVENT = "Verified"

    def __init__(self, engine: SubmissionEngine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: NotaryConfig, logger: Optional[logging.Logger] = None) -> "Notary":
        """
        Wire transport, contract, signing key and engine from configuration.

        Raises:
            KeyfileError: If the key file cannot be decrypted
        """
        contract = ContractInterface.load(
            abi_path=config.abi_path,
            address=config.contract_address,
            bytecode_path=config.bytecode_path
        )
        transport = get_transport(config.provider)
        account = recover_account(config.keyfile, config.password)
        if account.address.lower() != config.address.lower():
            (logger or logging.getLogger(__name__)).warning(
                f"ETH_ADDRESS {config.address} does not match key file address {account.address}"
            )

        engine = SubmissionEngine(
            transport,
            contract,
            account,
            sender_address=config.address,
            chain_id=config.chain_id,
            gas_limit=config.gas_limit,
            gas_price=config.gas_price,
            max_retries=config.max_retries,
            logger=logger
        )
        return cls(engine, logger=logger)

    @staticmethod
    def digest(text: str) -> str:
        return sha256_hex(text)

    def store(self, text: str) -> str:
        """
        Record the digest of a text.

        Returns as soon as the network accepts the transaction; the write
        may not be mined yet.

        Args:
            text: Text to notarize

        Returns:
            Transaction hash
        """
        value_hash = self.digest(text)
        self.logger.info(f"Notarizing {redact(text)} as {value_hash}")

        outcome = self.engine.submit(self.NOTARIZE, [value_hash], resolve_early=True)

        self.logger.info(f"Notarized {value_hash}")
        return outcome.tx_hash

    def check(self, text: str) -> VerificationResult:
        """
        Check whether the digest of a text was previously recorded.

        Waits for the verification transaction to be mined and reads the
        result from its Verified event.

        Raises:
            TransactionError: If the verification transaction reverted
            ReceiptDecodeError: If the receipt has no Verified event
        """
        value_hash = self.digest(text)
        self.logger.info(f"Verifying {redact(text)} as {value_hash}")

        outcome = self.engine.submit(self.VERIFY, [value_hash])
        if outcome.status is SubmissionStatus.FAILED:
            raise TransactionError(outcome.reason or "Verification failed", tx_hash=outcome.tx_hash)

        events = self.engine.contract.decode_logs(outcome.receipt.logs, self.VERIFIED_EVENT)
        if not events:
            raise ReceiptDecodeError(f"No {self.VERIFIED_EVENT} event in receipt {outcome.tx_hash}")
        notarized = bool(events[0]["notarized"])

        self.logger.info(f"Verified {value_hash}: {notarized}")
        return VerificationResult(notarized=notarized, txHash=outcome.tx_hash)

    def deploy(self, constructor_args: Sequence[Any] = ()) -> str:
        """
        Deploy the contract and point the engine at it.

        Returns:
            Address of the deployed contract

        Raises:
            TransactionError: If the deployment reverted
        """
        self.logger.info("Deploying contract")
        outcome = self.engine.submit("deploy", constructor_args, deploy=True)
        if outcome.status is SubmissionStatus.FAILED or not outcome.receipt.contract_address:
            raise TransactionError(outcome.reason or "Deployment produced no contract", tx_hash=outcome.tx_hash)

        address = outcome.receipt.contract_address
        self.engine.contract = self.engine.contract.at(address)
        self.logger.info(f"Deployed contract {address}")
        return address
