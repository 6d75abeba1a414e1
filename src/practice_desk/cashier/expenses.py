"""Cash drawer expenses of the current session, kept in a local JSON file.

The file survives a restart on the same machine; it is not shared between
desks, so each clerk sees only their own pending expenses until the
register is closed.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog

from practice_desk.cashier.errors import CashierValidationError
from practice_desk.models import SessionExpense

logger = structlog.get_logger(__name__)


class SessionExpenseBook:
    """Pending expenses persisted to ``path`` after every change."""

    def __init__(self, path: Path | None = None):
        self._path = path
        self._expenses: list[SessionExpense] = self._load(path) if path else []
        self._logger = logger.bind(component="expense_book")

    def _load(self, path: Path) -> list[SessionExpense]:
        if not path.exists():
            return []
        raw = json.loads(path.read_text(encoding="utf-8") or "[]")
        if not isinstance(raw, list):
            raise ValueError(f"{path}: expected a JSON list of expenses")
        return [self._from_dict(item) for item in raw]

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [self._to_dict(expense) for expense in self._expenses]
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    @staticmethod
    def _to_dict(expense: SessionExpense) -> dict[str, Any]:
        return {
            "id": expense.id,
            "amount": str(expense.amount),
            "description": expense.description,
            "created_at": expense.created_at.isoformat(),
        }

    @staticmethod
    def _from_dict(item: dict[str, Any]) -> SessionExpense:
        return SessionExpense(
            id=str(item["id"]),
            amount=Decimal(str(item["amount"])),
            description=str(item["description"]),
            created_at=datetime.fromisoformat(item["created_at"]),
        )

    @property
    def expenses(self) -> list[SessionExpense]:
        return self._expenses.copy()

    @property
    def total(self) -> Decimal:
        return sum((e.amount for e in self._expenses), Decimal("0"))

    def __len__(self) -> int:
        return len(self._expenses)

    def add(self, amount: Decimal | str | float, description: str) -> SessionExpense:
        """Record an expense with a positive amount and a description."""
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError) as exc:
            raise CashierValidationError("Expense amount is not a number") from exc
        if not value.is_finite() or value <= 0 or not description.strip():
            raise CashierValidationError(
                "Fill in a valid amount and description for the cash expense"
            )

        expense = SessionExpense(id=str(uuid4()), amount=value, description=description.strip())
        self._expenses.append(expense)
        self._save()
        self._logger.info("expense_added", expense_id=expense.id, amount=str(value))
        return expense

    def remove(self, expense_id: str) -> None:
        self._expenses = [e for e in self._expenses if e.id != expense_id]
        self._save()

    def clear(self, expense_ids: set[str] | None = None) -> None:
        """Drop the given expenses (all of them when ``expense_ids`` is None)."""
        if expense_ids is None:
            self._expenses = []
        else:
            self._expenses = [e for e in self._expenses if e.id not in expense_ids]
        self._save()

    def describe(self) -> str:
        """Summary stored on the closed register."""
        return "; ".join(f"{e.description}: {e.amount:.2f}€" for e in self._expenses)
