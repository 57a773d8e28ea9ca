"""
Classification of transport errors raised while broadcasting transactions.

RPC nodes report stale nonces and fee problems as free text, so the
default classifier matches substrings of the error message. Any callable
taking the exception and returning an ErrorKind can replace it, e.g. one
that inspects structured JSON-RPC error codes.
"""
from enum import Enum
from typing import Callable, Iterable, Tuple


class ErrorKind(str, Enum):
    """How the submission engine should react to a transport error."""
    RETRY = "retry"
    FATAL = "fatal"


ErrorClassifier = Callable[[BaseException], ErrorKind]

# Same transaction already seen by the node, or fee too low for the nonce
RETRYABLE_PATTERNS: Tuple[str, ...] = ("known transaction", "underpriced")


class SubstringClassifier:
    """Classify an error as retryable when its text contains a known pattern."""

    def __init__(self, patterns: Iterable[str] = RETRYABLE_PATTERNS):
        self.patterns = tuple(patterns)

    def __call__(self, error: BaseException) -> ErrorKind:
        message = str(error)
        if any(pattern in message for pattern in self.patterns):
            return ErrorKind.RETRY
        return ErrorKind.FATAL

    def __repr__(self) -> str:
        return f"SubstringClassifier(patterns={self.patterns!r})"


default_classifier = SubstringClassifier()
