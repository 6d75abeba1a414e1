"""Persistence contract for the cash desk and an in-process implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import structlog

from practice_desk.cashier.errors import LedgerConflictError
from practice_desk.models import CashAgreement, CashOperation, CashPayment, ReportLine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CloseRequest:
    """Everything needed to close the register in one atomic call."""

    deposited_amount: Decimal
    mbway_deposited_amount: Decimal
    spent_amount: Decimal
    adjustment_amount: Decimal
    spent_description: str
    report_details: tuple[ReportLine, ...]
    payment_ids: tuple[str, ...]
    expense_ids: tuple[str, ...] = ()


class CashLedger(ABC):
    """Storage for payments, payment plans and closed registers.

    ``close_register`` is all-or-nothing: either every listed payment gets
    the new operation id and exactly one operation is created, or nothing
    changes and the call raises.
    """

    @abstractmethod
    async def list_payments(self) -> list[CashPayment]:
        pass

    @abstractmethod
    async def delete_payments(self, payment_ids: Sequence[str]) -> None:
        pass

    @abstractmethod
    async def upsert_payments(self, payments: Sequence[CashPayment]) -> None:
        pass

    @abstractmethod
    async def list_agreements(self) -> list[CashAgreement]:
        pass

    @abstractmethod
    async def upsert_agreement(self, agreement: CashAgreement) -> CashAgreement:
        pass

    @abstractmethod
    async def list_operations(self) -> list[CashOperation]:
        """Closed registers, newest first."""
        pass

    @abstractmethod
    async def close_register(self, request: CloseRequest) -> CashOperation:
        pass


def report_total(lines: Iterable[ReportLine]) -> Decimal:
    return sum((line.total for line in lines), Decimal("0"))


class InMemoryCashLedger(CashLedger):
    """Ledger kept in process memory.

    ``before_operation_created`` runs after payments are marked and before
    the operation is recorded; an exception raised there rolls the close
    back, which is how the all-or-nothing contract is exercised in tests.
    """

    def __init__(
        self,
        payments: Iterable[CashPayment] = (),
        agreements: Iterable[CashAgreement] = (),
        operations: Iterable[CashOperation] = (),
        before_operation_created: Callable[[], None] | None = None,
    ):
        self._payments: dict[str, CashPayment] = {p.id: p for p in payments}
        self._agreements: dict[str, CashAgreement] = {a.id: a for a in agreements}
        self._operations: list[CashOperation] = list(operations)
        self.before_operation_created = before_operation_created
        self._logger = logger.bind(component="in_memory_ledger")

    async def list_payments(self) -> list[CashPayment]:
        return list(self._payments.values())

    async def delete_payments(self, payment_ids: Sequence[str]) -> None:
        for payment_id in payment_ids:
            existing = self._payments.get(payment_id)
            if existing is not None and existing.is_processed:
                raise LedgerConflictError(
                    "Processed payments cannot be deleted", details={"payment_id": payment_id}
                )
        for payment_id in payment_ids:
            self._payments.pop(payment_id, None)

    async def upsert_payments(self, payments: Sequence[CashPayment]) -> None:
        for payment in payments:
            existing = self._payments.get(payment.id)
            if existing is not None and existing.is_processed:
                raise LedgerConflictError(
                    "Processed payments are immutable", details={"payment_id": payment.id}
                )
        for payment in payments:
            self._payments[payment.id] = payment

    async def list_agreements(self) -> list[CashAgreement]:
        return list(self._agreements.values())

    async def upsert_agreement(self, agreement: CashAgreement) -> CashAgreement:
        now = datetime.now(timezone.utc)
        stored = replace(
            agreement,
            created_at=agreement.created_at or now,
            updated_at=now,
        )
        self._agreements[stored.id] = stored
        return stored

    async def list_operations(self) -> list[CashOperation]:
        return sorted(self._operations, key=lambda op: op.created_at, reverse=True)

    async def close_register(self, request: CloseRequest) -> CashOperation:
        selected: list[CashPayment] = []
        for payment_id in request.payment_ids:
            payment = self._payments.get(payment_id)
            if payment is None:
                raise LedgerConflictError(
                    "Unknown payment in close request", details={"payment_id": payment_id}
                )
            if payment.is_processed:
                raise LedgerConflictError(
                    "Payment already processed", details={"payment_id": payment_id}
                )
            selected.append(payment)

        paid_total = sum((p.amount_paid for p in selected), Decimal("0"))
        if paid_total != report_total(request.report_details):
            raise LedgerConflictError(
                "Report totals do not match the payments being closed",
                details={"payments": str(paid_total)},
            )

        payments_snapshot = dict(self._payments)
        operations_snapshot = list(self._operations)
        operation_id = str(uuid4())
        try:
            for payment in selected:
                self._payments[payment.id] = replace(payment, cash_operation_id=operation_id)
            if self.before_operation_created is not None:
                self.before_operation_created()
            operation = CashOperation(
                id=operation_id,
                created_at=datetime.now(timezone.utc),
                deposited_amount=request.deposited_amount,
                spent_amount=request.spent_amount,
                mbway_deposited_amount=request.mbway_deposited_amount,
                adjustment_amount=request.adjustment_amount,
                spent_description=request.spent_description,
                report_details=request.report_details,
            )
            self._operations.append(operation)
        except Exception:
            self._payments = payments_snapshot
            self._operations = operations_snapshot
            self._logger.warning("close_rolled_back", payments=len(selected))
            raise

        self._logger.info("register_closed", operation_id=operation_id, payments=len(selected))
        return operation
