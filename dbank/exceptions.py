"""
Ledger exceptions.

Every rejected operation raises a LedgerError before any store is written.
LedgerError derives from ValueError so callers that only catch ValueError
keep working.
"""


class LedgerError(ValueError):
    """Base exception for all ledger-related errors."""
    pass


class ValidationError(LedgerError):
    """Raised when request input is rejected (zero amount, below minimum, negative term)."""
    pass


class PreconditionError(LedgerError):
    """Raised when the current state does not allow the operation."""
    pass


class InsufficientFunds(PreconditionError):
    """Raised when a debit would drive a balance below zero."""
    pass


class StakingNotActive(PreconditionError):
    """Raised when an operation needs an active staking position and there is none."""
    pass


class LoanNotFound(PreconditionError):
    """Raised for a user without loans or a loan id outside the user's sequence."""
    pass


class LoanNotActive(PreconditionError):
    """Raised when repaying a loan that is not in the active state."""
    pass


class LimitExceeded(LedgerError):
    """Raised when a request exceeds a limit derived from current state (loan-to-staking ratio)."""
    pass
