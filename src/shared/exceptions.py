"""
Operator Exceptions
===================
Error taxonomy for the command dispatcher.

- InvalidInputError: bad operator input, raised before any network call
- TransactionFailedError: submission rejected or landed with an error
- AccountNotFoundError: required on-chain account missing or malformed
- TransactionNotFoundError: fetch of a landed tx returned nothing
"""

from typing import Optional


class OperatorError(Exception):
    """Base class for all operator-facing failures."""


class InvalidInputError(OperatorError, ValueError):
    """Raised when an operator-supplied value cannot be parsed."""


class TransactionFailedError(OperatorError):
    """
    Raised when a transaction is rejected by the node or lands with an error.

    Chunks submitted before the failing one are NOT rolled back.
    """

    def __init__(self, reason: str, signature: Optional[str] = None):
        self.reason = reason
        self.signature = signature
        if signature:
            super().__init__(f"Transaction {signature} failed: {reason}")
        else:
            super().__init__(f"Transaction failed: {reason}")


class AccountNotFoundError(OperatorError):
    """Raised when an on-chain account is missing or has the wrong layout."""


class TransactionNotFoundError(OperatorError):
    """Raised when a signature is not (yet) visible to the node."""
