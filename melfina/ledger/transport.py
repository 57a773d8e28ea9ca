"""
Transport layer for the remote ledger.

This module defines the interface the submission engine uses to talk to a
ledger RPC endpoint, so that the web3-backed implementation and the
in-memory simulation are interchangeable.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..contract import ContractInterface

logger = logging.getLogger(__name__)


class LedgerTransport(ABC):
    """
    Abstract base class for ledger transport implementations.

    Implementations accept serialized signed transactions, report the
    account transaction count and expose transaction receipts.
    """

    @property
    @abstractmethod
    def chain_id(self) -> int:
        """Chain id used for replay-protected signatures."""
        pass

    @abstractmethod
    def get_transaction_count(self, address: str) -> int:
        """
        Get the number of transactions sent from an address.

        Args:
            address: Account address

        Returns:
            The next usable nonce for the account
        """
        pass

    @abstractmethod
    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """
        Broadcast a signed, serialized transaction.

        Args:
            raw_transaction: RLP-encoded signed transaction

        Returns:
            0x-prefixed transaction hash assigned by the network

        Raises:
            Exception: Whatever the node reports; the message text is what
                the engine classifies as retryable or fatal
        """
        pass

    @abstractmethod
    def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        """
        Look up a receipt.

        Returns:
            The receipt, or None if the transaction is not mined yet
        """
        pass

    @abstractmethod
    def wait_for_transaction_receipt(
        self,
        tx_hash: str,
        timeout: float = 120,
        poll_latency: float = 1.0
    ) -> Mapping[str, Any]:
        """
        Block until a receipt is available.

        Raises:
            web3.exceptions.TimeExhausted: If no receipt appears in time
        """
        pass

    def close(self) -> None:
        """Close any open connections or resources."""
        pass


def get_transport(
    rpc_url: Optional[str] = None,
    contract: Optional["ContractInterface"] = None,
    in_memory: bool = False
) -> LedgerTransport:
    """
    Get a transport implementation.

    Args:
        rpc_url: Ledger RPC endpoint URL
        contract: Contract interface, required for the in-memory ledger
        in_memory: Use the local in-memory ledger instead of an RPC endpoint

    Returns:
        Transport implementation

    Raises:
        ValueError: If neither an RPC URL nor in-memory mode is requested
    """
    if in_memory:
        if contract is None:
            raise ValueError("The in-memory ledger needs a contract interface")
        from .memory import InMemoryLedger
        logger.info("Using in-memory ledger")
        return InMemoryLedger(contract)

    if not rpc_url:
        raise ValueError("rpc_url is required unless in_memory is set")

    from .web3_transport import Web3Transport
    logger.info(f"Using web3 transport for {rpc_url}")
    return Web3Transport(rpc_url)
