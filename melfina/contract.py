"""
Contract interface description used to encode calls and decode logs.
"""
import importlib.resources
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from web3 import Web3
from web3.logs import DISCARD

logger = logging.getLogger(__name__)

DEFAULT_ABI_RESOURCE = "ProofOfExistence.abi.json"


class ContractInterface:
    """
    ABI-backed view of the notarization contract.

    Wraps a web3 contract object so callers can encode function calls,
    constructor data and decode emitted logs without a live provider.
    """

    _default_abi_cache: Optional[List[Dict[str, Any]]] = None

    def __init__(
        self,
        abi: List[Dict[str, Any]],
        address: Optional[str] = None,
        bytecode: Optional[str] = None,
        w3: Optional[Web3] = None
    ):
        self.abi = abi
        self.address = Web3.to_checksum_address(address) if address else None
        self.bytecode = bytecode
        self.w3 = w3 or Web3()
        self._contract = self.w3.eth.contract(
            address=self.address,
            abi=abi,
            bytecode=bytecode
        )

    @classmethod
    def default_abi(cls) -> List[Dict[str, Any]]:
        """Load the bundled ProofOfExistence ABI."""
        if cls._default_abi_cache is None:
            resource = importlib.resources.files("melfina.contracts") / DEFAULT_ABI_RESOURCE
            cls._default_abi_cache = json.loads(resource.read_text(encoding="utf-8"))
        return cls._default_abi_cache

    @classmethod
    def load(
        cls,
        abi_path: Optional[Union[str, Path]] = None,
        address: Optional[str] = None,
        bytecode_path: Optional[Union[str, Path]] = None,
        w3: Optional[Web3] = None
    ) -> "ContractInterface":
        """
        Build an interface from files on disk.

        Args:
            abi_path: Path to an ABI JSON file (bundled ABI if omitted)
            address: Deployed contract address, if any
            bytecode_path: Path to a file holding the hex bytecode, if any
            w3: Web3 instance to attach to

        Returns:
            ContractInterface
        """
        if abi_path:
            with open(abi_path, "r", encoding="utf-8") as f:
                abi = json.load(f)
        else:
            abi = cls.default_abi()

        bytecode = None
        if bytecode_path:
            with open(bytecode_path, "r", encoding="utf-8") as f:
                bytecode = f.read().strip()
            if not bytecode.startswith("0x"):
                bytecode = "0x" + bytecode

        return cls(abi, address=address, bytecode=bytecode, w3=w3)

    def at(self, address: str) -> "ContractInterface":
        """Return the same interface bound to a deployed address."""
        return ContractInterface(self.abi, address=address, bytecode=self.bytecode, w3=self.w3)

    def has_function(self, name: str) -> bool:
        return any(
            entry.get("type") == "function" and entry.get("name") == name
            for entry in self.abi
        )

    def get_event_abi(self, name: str) -> Dict[str, Any]:
        for entry in self.abi:
            if entry.get("type") == "event" and entry.get("name") == name:
                return entry
        raise ValueError(f"Event {name} not found in contract ABI")

    def encode_call(self, name: str, args: Sequence[Any] = ()) -> str:
        """
        Encode a function call as transaction data.

        Raises:
            ValueError: If the function is not part of the ABI
        """
        if not self.has_function(name):
            raise ValueError(f"Unknown contract function: {name}")
        return self._contract.encodeABI(fn_name=name, args=list(args))

    def encode_deploy(self, args: Sequence[Any] = ()) -> str:
        """
        Encode contract creation data (bytecode plus constructor arguments).

        Raises:
            ValueError: If no bytecode is available
        """
        if not self.bytecode:
            raise ValueError("Contract bytecode not provided")
        return self._contract.constructor(*args).data_in_transaction

    def decode_function_input(self, data: Union[str, bytes]) -> Tuple[str, Dict[str, Any]]:
        """Decode call data into the function name and its arguments."""
        func, params = self._contract.decode_function_input(data)
        return func.fn_name, dict(params)

    def decode_logs(self, logs: List[Mapping[str, Any]], event_name: str) -> List[Dict[str, Any]]:
        """
        Decode the arguments of every log matching an event.

        Logs emitted by other events are skipped.

        Args:
            logs: Raw log entries from a receipt
            event_name: ABI event name to decode

        Returns:
            List of argument dictionaries, in log order
        """
        event = getattr(self._contract.events, event_name)()
        decoded = event.process_receipt({"logs": logs}, errors=DISCARD)
        logger.debug(f"Decoded {len(decoded)} {event_name} log(s) from {len(logs)} entries")
        return [dict(entry["args"]) for entry in decoded]
