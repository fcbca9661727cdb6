"""
Exception hierarchy for the vesting pool and its value ledger.

Every rejected operation raises one of these typed exceptions before any state
is mutated, so callers can distinguish authorization failures, bad input and
"try again later" conditions without parsing messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class TokenVestError(Exception):
    """Base exception for all tokenvest errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the caller may retry after the condition changes
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Vesting Pool Errors ====================


class VestingError(TokenVestError):
    """Raised when a vesting pool operation is rejected."""
    pass


class InvalidAllocationError(VestingError):
    """Raised when a beneficiary allocation is zero, negative or not an integer."""
    pass


class InvalidDurationError(VestingError):
    """Raised when a pool is created with a non-positive vesting duration."""
    pass


class AlreadyRegisteredError(VestingError):
    """Raised when registering a beneficiary that already has a record."""
    pass


class NotRegisteredError(VestingError):
    """Raised when revoking a beneficiary that was never registered."""
    pass


class AlreadyRevokedError(VestingError):
    """Raised when revoking a beneficiary twice."""
    pass


class NothingToReleaseError(VestingError):
    """Raised when a release finds no vested-but-unreleased units."""
    recoverable = True  # More may accrue later


class TransferFailedError(VestingError):
    """Raised when the value ledger refuses an outbound pool transfer.

    Usually means the pool is under-funded relative to its obligations.
    """
    recoverable = True  # Can retry once the pool is topped up


# ==================== Value Ledger Errors ====================


class LedgerError(TokenVestError):
    """Raised when a value ledger operation is rejected."""
    pass


class UnauthorizedError(VestingError, LedgerError):
    """Raised when the caller is not allowed to invoke a privileged operation."""
    pass


class InvalidAddressError(VestingError, LedgerError):
    """Raised when an address is empty or the zero address."""
    pass


class InsufficientBalanceError(LedgerError):
    """Raised when an account lacks the balance for a transfer."""
    pass


class InsufficientAllowanceError(LedgerError):
    """Raised when a delegated transfer exceeds the approved allowance."""
    pass


class InvalidAmountError(LedgerError):
    """Raised when a ledger amount is negative or exceeds uint256."""
    pass


class AlreadyIssuedError(LedgerError):
    """Raised when the one-time supply issuance is attempted again."""
    pass


class PermitError(LedgerError):
    """Raised when a signature-based approval is rejected."""
    pass


class PermitExpiredError(PermitError):
    """Raised when a permit is submitted after its deadline."""
    pass


class InvalidPermitSignatureError(PermitError):
    """Raised when a permit signature does not match the owner."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(TokenVestError):
    """Raised when settings loaded from the environment are invalid."""
    recoverable = False


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the caller can retry after the triggering condition changes
    """
    if isinstance(exc, TokenVestError):
        return exc.recoverable
    return False


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, TokenVestError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    return context
