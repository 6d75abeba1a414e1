"""Cash ledger backed by the hosted store."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

import structlog

from practice_desk.cashier.ledger import CashLedger, CloseRequest
from practice_desk.models import CashAgreement, CashOperation, CashPayment
from practice_desk.store.client import StoreClient, in_filter
from practice_desk.store.errors import StoreError
from practice_desk.store.mappers import (
    agreement_from_row,
    agreement_to_row,
    operation_from_row,
    payment_from_row,
    payment_to_row,
    report_line_to_dict,
)

logger = structlog.get_logger(__name__)

PAYMENTS_TABLE = "cash_payments"
AGREEMENTS_TABLE = "cash_payment_agreements"
OPERATIONS_TABLE = "cash_operations"
CLOSE_REGISTER_RPC = "close_cash_register_atomic"


def close_request_args(request: CloseRequest) -> dict:
    """Arguments of the atomic close procedure."""
    return {
        "p_deposited_amount": float(request.deposited_amount),
        "p_spent_amount": float(request.spent_amount),
        "p_spent_description": request.spent_description,
        "p_report_details": [report_line_to_dict(line) for line in request.report_details],
        "p_payment_ids": list(request.payment_ids),
        "p_mbway_deposited_amount": float(request.mbway_deposited_amount),
        "p_adjustment_amount": float(request.adjustment_amount),
        "p_session_expense_ids": list(request.expense_ids),
    }


class StoreCashLedger(CashLedger):
    """Ledger over the store tables.

    Closing relies on the ``close_cash_register_atomic`` procedure, which
    marks the payments and creates the operation in one transaction.
    """

    def __init__(self, client: StoreClient):
        self._client = client
        self._logger = logger.bind(component="store_ledger")

    async def list_payments(self) -> list[CashPayment]:
        rows = await self._client.select(PAYMENTS_TABLE)
        return [payment_from_row(row) for row in rows]

    async def delete_payments(self, payment_ids: Sequence[str]) -> None:
        if not payment_ids:
            return
        # Processed rows are protected by the filter.
        await self._client.delete(
            PAYMENTS_TABLE,
            {"id": in_filter(payment_ids), "cash_operation_id": "is.null"},
        )
        self._logger.info("payments_deleted", count=len(payment_ids))

    async def upsert_payments(self, payments: Sequence[CashPayment]) -> None:
        rows = [payment_to_row(p) for p in payments]
        await self._client.upsert(PAYMENTS_TABLE, rows)
        self._logger.info("payments_upserted", count=len(rows))

    async def list_agreements(self) -> list[CashAgreement]:
        rows = await self._client.select(AGREEMENTS_TABLE)
        return [agreement_from_row(row) for row in rows]

    async def upsert_agreement(self, agreement: CashAgreement) -> CashAgreement:
        rows = await self._client.upsert(AGREEMENTS_TABLE, [agreement_to_row(agreement)])
        if not rows:
            raise StoreError("Agreement upsert returned no row", details={"id": agreement.id})
        return agreement_from_row(rows[0])

    async def list_operations(self) -> list[CashOperation]:
        rows = await self._client.select(OPERATIONS_TABLE, order="created_at.desc")
        return [operation_from_row(row) for row in rows]

    async def close_register(self, request: CloseRequest) -> CashOperation:
        result = await self._client.rpc(CLOSE_REGISTER_RPC, close_request_args(request))
        row = result[0] if isinstance(result, list) and result else result
        if not isinstance(row, dict) or "id" not in row:
            raise StoreError("Close register returned no operation", details=result)

        operation = operation_from_row(row)
        self._logger.info(
            "register_closed",
            operation_id=operation.id,
            payments=len(request.payment_ids),
            deposited=str(Decimal(request.deposited_amount)),
        )
        return operation
