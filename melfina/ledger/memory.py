"""
In-memory ledger for tests and offline development.

This module simulates just enough of an Ethereum node to exercise the
submission engine end to end: it decodes signed legacy transactions,
tracks account nonces, rejects duplicate and underpriced transactions with
the same error text real nodes use, runs the ProofOfExistence contract
semantics and produces ABI-encoded receipts.
"""
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Optional, Union

import rlp
from eth_abi import encode as abi_encode
from eth_account import Account
from eth_utils import big_endian_to_int, event_abi_to_log_topic, keccak, to_checksum_address
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted

from ..contract import ContractInterface
from ..utils import to_hex
from .transport import LedgerTransport

logger = logging.getLogger(__name__)

# Legacy transaction field positions in the RLP list
_NONCE, _GAS_PRICE, _GAS, _TO, _VALUE, _DATA = range(6)


class InMemoryLedger(LedgerTransport):
    """
    A single-process simulation of a ledger running ProofOfExistence.

    Transactions are mined immediately when auto_mine is set; otherwise
    they wait in the mempool until mine() is called.
    """

    def __init__(
        self,
        contract: ContractInterface,
        chain_id: int = 1337,
        min_gas_price: int = 0,
        auto_mine: bool = True
    ):
        self.contract = contract
        self._chain_id = chain_id
        self.min_gas_price = min_gas_price
        self.auto_mine = auto_mine

        self.block_number = 0
        self.nonces: Dict[str, int] = {}
        self.transactions: Dict[str, bytes] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.mempool: List[Dict[str, Any]] = []
        # contract address -> {digest: True}
        self.storage: Dict[str, Dict[str, bool]] = {}
        self._failures: Deque[BaseException] = deque()
        self._lock = threading.RLock()

        if contract.address:
            self.storage[contract.address] = {}

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def fail_next(self, error: Union[str, BaseException], count: int = 1) -> None:
        """
        Make the next broadcasts fail.

        Args:
            error: Exception to raise, or a message wrapped in ValueError
            count: Number of consecutive broadcasts to fail
        """
        exc = ValueError(error) if isinstance(error, str) else error
        with self._lock:
            self._failures.extend([exc] * count)

    def get_transaction_count(self, address: str) -> int:
        with self._lock:
            return self.nonces.get(to_checksum_address(address), 0)

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        with self._lock:
            if self._failures:
                raise self._failures.popleft()

            tx_hash = to_hex(keccak(raw_transaction))
            if tx_hash in self.transactions:
                raise ValueError(f"known transaction: {tx_hash[2:]}")

            tx = self._decode(raw_transaction)
            tx["hash"] = tx_hash
            expected = self.nonces.get(tx["from"], 0)
            if tx["nonce"] < expected:
                raise ValueError(f"nonce too low: next nonce {expected}, tx nonce {tx['nonce']}")
            if tx["gas_price"] < self.min_gas_price:
                raise ValueError("transaction underpriced")
            if any(p["from"] == tx["from"] and p["nonce"] == tx["nonce"] for p in self.mempool):
                raise ValueError("replacement transaction underpriced")

            self.transactions[tx_hash] = raw_transaction
            self.mempool.append(tx)
            logger.debug(f"Accepted {tx_hash} from {tx['from']} with nonce {tx['nonce']}")

            if self.auto_mine:
                self.mine()
            return tx_hash

    def mine(self) -> int:
        """
        Mine every executable mempool transaction, one block each.

        Transactions whose nonce leaves a gap stay in the mempool.

        Returns:
            Number of transactions mined
        """
        mined = 0
        with self._lock:
            progress = True
            while progress:
                progress = False
                for tx in sorted(self.mempool, key=lambda t: t["nonce"]):
                    if tx["nonce"] != self.nonces.get(tx["from"], 0):
                        continue
                    self.mempool.remove(tx)
                    self.nonces[tx["from"]] = tx["nonce"] + 1
                    self.receipts[tx["hash"]] = self._execute(tx)
                    mined += 1
                    progress = True
        return mined

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        with self._lock:
            return self.receipts.get(to_hex(tx_hash))

    def wait_for_transaction_receipt(
        self,
        tx_hash: str,
        timeout: float = 120,
        poll_latency: float = 1.0
    ) -> Mapping[str, Any]:
        receipt = self.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return receipt

    def is_notarized(self, digest: str, address: Optional[str] = None) -> bool:
        """Read contract storage directly."""
        address = to_checksum_address(address) if address else self.contract.address
        with self._lock:
            return self.storage.get(address, {}).get(digest, False)

    def _decode(self, raw_transaction: bytes) -> Dict[str, Any]:
        fields = rlp.decode(raw_transaction)
        to = fields[_TO]
        return {
            "from": to_checksum_address(Account.recover_transaction(raw_transaction)),
            "nonce": big_endian_to_int(fields[_NONCE]),
            "gas_price": big_endian_to_int(fields[_GAS_PRICE]),
            "gas": big_endian_to_int(fields[_GAS]),
            "to": to_checksum_address(to) if to else None,
            "data": bytes(fields[_DATA]),
        }

    def _execute(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        self.block_number += 1
        block_hash = keccak(text=f"block:{self.block_number}")
        status = 1
        logs: List[Dict[str, Any]] = []
        contract_address = None

        if tx["to"] is None:
            sender = bytes(HexBytes(tx["from"]))
            contract_address = to_checksum_address(keccak(rlp.encode([sender, tx["nonce"]]))[12:])
            self.storage[contract_address] = {}
            logger.info(f"Deployed contract {contract_address}")
        elif tx["to"] in self.storage:
            proofs = self.storage[tx["to"]]
            try:
                name, params = self.contract.decode_function_input(tx["data"])
            except ValueError:
                name, params = None, {}
            if name == "notarize":
                proofs[params["hash"]] = True
                logs.append(self._event_log("Notarized", [params["hash"]], tx, block_hash))
            elif name == "verify":
                notarized = proofs.get(params["hash"], False)
                logs.append(self._event_log("Verified", [params["hash"], notarized], tx, block_hash))
            else:
                status = 0

        for index, entry in enumerate(logs):
            entry["logIndex"] = index

        return {
            "transactionHash": HexBytes(tx["hash"]),
            "transactionIndex": 0,
            "blockNumber": self.block_number,
            "blockHash": HexBytes(block_hash),
            "status": status,
            "gasUsed": min(tx["gas"], 21000 + 16 * len(tx["data"])),
            "from": tx["from"],
            "to": tx["to"],
            "contractAddress": contract_address,
            "logs": logs,
        }

    def _event_log(self, name: str, values: List[Any], tx: Dict[str, Any], block_hash: bytes) -> Dict[str, Any]:
        event_abi = self.contract.get_event_abi(name)
        types = [arg["type"] for arg in event_abi["inputs"]]
        return {
            "address": tx["to"],
            "topics": [HexBytes(event_abi_to_log_topic(event_abi))],
            "data": HexBytes(abi_encode(types, values)),
            "logIndex": 0,
            "transactionIndex": 0,
            "transactionHash": HexBytes(tx["hash"]),
            "blockHash": HexBytes(block_hash),
            "blockNumber": self.block_number,
            "removed": False,
        }
