"""
Utility functions for Melfina.
"""
import hashlib
from typing import Any, Dict, Union

from web3 import Web3


def sha256_hex(data: Union[str, bytes]) -> str:
    """
    Calculate the SHA-256 hash of text or bytes.

    Args:
        data: Text (encoded as UTF-8) or raw bytes

    Returns:
        Lowercase hex digest, 64 characters, without 0x prefix
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def to_hex(value: Union[bytes, str, int]) -> str:
    """Return a 0x-prefixed hex string for bytes, hex strings or integers."""
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def redact(text: str) -> str:
    """Describe caller text for logging without revealing it."""
    return f"[REDACTED - {len(text)} chars]"


def hexify_receipt(receipt: Any) -> Dict[str, Any]:
    """
    Copy a receipt mapping, converting top-level byte values to 0x-hex.

    Log entries are left untouched so they can still be decoded against
    the contract ABI.
    """
    receipt_dict = dict(receipt)
    for key, value in list(receipt_dict.items()):
        if isinstance(value, bytes):
            receipt_dict[key] = to_hex(value)
    return receipt_dict
