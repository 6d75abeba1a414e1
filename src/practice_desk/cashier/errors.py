"""Exceptions raised by the cash desk."""

from typing import Any


class CashierError(Exception):
    """Base exception for cash desk rule violations."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class CashierValidationError(CashierError):
    """Input rejected before anything was written."""

    pass


class PaymentLockedError(CashierError):
    """The cell belongs to a closed register or a payment plan."""

    pass


class LedgerConflictError(CashierError):
    """The ledger refused a write that would break its invariants."""

    pass
