"""
Exceptions for the wallet transfer engine.

Validation errors are raised before any transfer record exists. Everything
else is caught by the engine and turned into a TransferResult.
"""


class TransferError(Exception):
    """Base exception for all transfer-engine errors."""
    pass


class ConfigError(TransferError):
    """Raised when the transfer configuration contains invalid values."""
    pass


# ============================================================================
# VALIDATION (raised to the caller, no partial state)
# ============================================================================

class ValidationError(TransferError):
    """Raised when a transfer request fails a precondition."""
    pass


class SelfTransferError(ValidationError):
    """Raised when the recipient token is the sender's own wallet."""
    pass


class InsufficientBalanceError(ValidationError):
    """Raised when the sender cannot cover amount plus fee."""
    pass


class DailyLimitExceededError(ValidationError):
    """Raised when a single transfer exceeds the per-transaction ceiling."""
    pass


class InvalidAmountError(ValidationError):
    """Raised when the amount is not a positive finite number."""
    pass


class FeeMismatchError(ValidationError):
    """Raised when the caller quoted a fee the calculator would not charge."""
    pass


class UnknownSenderError(ValidationError):
    """Raised when the sender account is missing or does not own the sender wallet."""
    pass


# ============================================================================
# STORE / LIFECYCLE
# ============================================================================

class InvalidStatusTransition(TransferError):
    """Raised when a transfer record in a terminal status is asked to change status."""
    pass


class LedgerMutationError(TransferError):
    """Raised when a balance delta could not be applied."""
    pass


class AccountNotFoundError(TransferError):
    """Raised when a balance delta targets an account that does not exist."""
    pass


class DuplicateAccountError(TransferError):
    """Raised when an account with the same id, wallet or username already exists."""
    pass
