"""
Exceptions raised by Melfina.
"""
from typing import Iterable, List, Optional


class MelfinaError(Exception):
    """Base exception for all Melfina errors."""
    pass


class ConfigurationError(MelfinaError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[Iterable[str]] = None):
        self.missing: List[str] = list(missing or [])
        super().__init__(message)


class KeyfileError(MelfinaError):
    """Raised when a key file cannot be parsed or decrypted."""
    pass


class TransactionError(MelfinaError):
    """Raised when a transaction cannot be signed or was reverted."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ReceiptDecodeError(MelfinaError):
    """Raised when a receipt does not carry the expected event log."""
    pass
