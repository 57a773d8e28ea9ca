"""
Melfina - proof-of-existence notarization on an Ethereum ledger.

Records the SHA-256 digest of a text through a smart contract call and
checks later whether a digest was recorded.
"""
from .contract import ContractInterface
from .engine import SubmissionEngine
from .exceptions import (
    ConfigurationError, KeyfileError, MelfinaError, ReceiptDecodeError, TransactionError
)
from .models import (
    OperationRequest, SignedPayload, SubmissionOutcome, SubmissionStatus, TxReceipt,
    VerificationResult
)
from .notary import Notary
from .retry import ErrorKind, SubstringClassifier, default_classifier
from .version import __version__

__all__ = [
    "ContractInterface",
    "SubmissionEngine",
    "Notary",
    "OperationRequest",
    "SignedPayload",
    "SubmissionOutcome",
    "SubmissionStatus",
    "TxReceipt",
    "VerificationResult",
    "ErrorKind",
    "SubstringClassifier",
    "default_classifier",
    "MelfinaError",
    "ConfigurationError",
    "KeyfileError",
    "TransactionError",
    "ReceiptDecodeError",
    "__version__",
]
