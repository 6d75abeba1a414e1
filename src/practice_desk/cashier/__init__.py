"""Cash desk: monthly fee payments, payment plans and register closing."""

from practice_desk.cashier.errors import (
    CashierError,
    CashierValidationError,
    LedgerConflictError,
    PaymentLockedError,
)
from practice_desk.cashier.expenses import SessionExpenseBook
from practice_desk.cashier.ledger import CashLedger, CloseRequest, InMemoryCashLedger
from practice_desk.cashier.register import (
    CashInHand,
    CashRegister,
    CellState,
    CloseOutcome,
    DeletePayment,
    PendingChangeSet,
    RegisterMismatch,
    UpsertPayment,
    build_report,
    cash_group_clients,
    commit,
)

__all__ = [
    # Errors
    "CashierError",
    "CashierValidationError",
    "LedgerConflictError",
    "PaymentLockedError",
    # Ledger
    "CashLedger",
    "CloseRequest",
    "InMemoryCashLedger",
    # Register
    "CashInHand",
    "CashRegister",
    "CellState",
    "CloseOutcome",
    "DeletePayment",
    "PendingChangeSet",
    "RegisterMismatch",
    "SessionExpenseBook",
    "UpsertPayment",
    "build_report",
    "cash_group_clients",
    "commit",
]
