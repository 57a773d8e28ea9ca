"""
web3-backed transport talking to a JSON-RPC ledger endpoint.
"""
import logging
from typing import Any, Mapping, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .transport import LedgerTransport

logger = logging.getLogger(__name__)


class Web3Transport(LedgerTransport):
    """
    Transport that signs nothing itself: it only relays raw transactions
    and queries state, which is all hosted nodes such as Infura allow.
    """

    def __init__(self, rpc_url: str, timeout: int = 30, w3: Optional[Web3] = None):
        """
        Args:
            rpc_url: Ledger RPC endpoint URL
            timeout: HTTP request timeout in seconds
            w3: Pre-built Web3 instance (overrides rpc_url)
        """
        self.rpc_url = rpc_url
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._chain_id: Optional[int] = None

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
            logger.debug(f"Connected to chain {self._chain_id}")
        return self._chain_id

    def get_transaction_count(self, address: str) -> int:
        # Include transactions still in the mempool
        return self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        tx_hash = self.w3.eth.send_raw_transaction(raw_transaction)
        return Web3.to_hex(tx_hash)

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            return self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    def wait_for_transaction_receipt(
        self,
        tx_hash: str,
        timeout: float = 120,
        poll_latency: float = 1.0
    ) -> Mapping[str, Any]:
        return self.w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=timeout,
            poll_latency=poll_latency
        )
