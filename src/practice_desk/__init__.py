"""Practice Desk: profitability analytics and cash desk for an accounting firm."""

__version__ = "0.1.0"

from practice_desk.analytics import (
    ProfitabilityResult,
    StaffStats,
    calculate_client_profitability,
    calculate_staff_stats,
)
from practice_desk.cashier import CashRegister, InMemoryCashLedger, PendingChangeSet

__all__ = [
    "__version__",
    "ProfitabilityResult",
    "StaffStats",
    "calculate_client_profitability",
    "calculate_staff_stats",
    "CashRegister",
    "InMemoryCashLedger",
    "PendingChangeSet",
]
