"""Cash register reconciliation.

Each (client, year, month) cell of the register grid moves through the
states of ``CellState``. Toggles only touch the in-memory
``PendingChangeSet``; nothing reaches the ledger until ``save_changes`` or
``close_register`` runs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

import structlog

from practice_desk.cashier import agreements as plans
from practice_desk.cashier.errors import (
    CashierError,
    CashierValidationError,
    PaymentLockedError,
)
from practice_desk.cashier.expenses import SessionExpenseBook
from practice_desk.cashier.ledger import CashLedger, CloseRequest
from practice_desk.config import get_settings
from practice_desk.models import (
    AgreementStatus,
    CashAgreement,
    CashOperation,
    CashPayment,
    Client,
    FeeGroup,
    PaymentMethod,
    ReportLine,
)

logger = structlog.get_logger(__name__)

CASH_GROUP_NAME = "pagamento numerário"
BALANCE_TOLERANCE = Decimal("0.01")
MONTH_LABELS = (
    "Jan", "Fev", "Mar", "Abr", "Mai", "Jun",
    "Jul", "Ago", "Set", "Out", "Nov", "Dez",
)

CellKey = tuple[str, int, int]


def cell_key(payment: CashPayment) -> CellKey:
    return (payment.client_id, payment.payment_year, payment.payment_month)


# =============================================================================
# Pending changes
# =============================================================================


@dataclass(frozen=True)
class UpsertPayment:
    """Write this payment on the next save."""

    payment: CashPayment


@dataclass(frozen=True)
class DeletePayment:
    """Remove this persisted payment on the next save."""

    payment: CashPayment

    @property
    def payment_id(self) -> str:
        return self.payment.id


PendingOp = UpsertPayment | DeletePayment


@dataclass(frozen=True)
class PendingChangeSet:
    """Unsaved register edits, at most one per cell.

    Instances are never mutated; every edit returns a new change set, so a
    caller can hold on to the previous one as a rollback snapshot.
    """

    ops: dict[CellKey, PendingOp] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.ops)

    def get(self, key: CellKey) -> PendingOp | None:
        return self.ops.get(key)

    def with_op(self, key: CellKey, op: PendingOp) -> PendingChangeSet:
        ops = dict(self.ops)
        ops[key] = op
        return PendingChangeSet(ops)

    def without(self, key: CellKey) -> PendingChangeSet:
        ops = dict(self.ops)
        ops.pop(key, None)
        return PendingChangeSet(ops)

    def deletions(self) -> list[DeletePayment]:
        return [op for op in self.ops.values() if isinstance(op, DeletePayment)]

    def upserts(self) -> list[UpsertPayment]:
        return [op for op in self.ops.values() if isinstance(op, UpsertPayment)]


async def commit(ledger: CashLedger, changes: PendingChangeSet) -> list[CashPayment]:
    """Apply deletions, then upserts, and return the persisted payments."""
    deletions = [op.payment_id for op in changes.deletions()]
    upserts = [op.payment for op in changes.upserts()]
    if deletions:
        await ledger.delete_payments(deletions)
    if upserts:
        await ledger.upsert_payments(upserts)
    return await ledger.list_payments()


# =============================================================================
# Register
# =============================================================================


class CellState(str, Enum):
    PENDING = "pending"
    PAID_CASH = "paid_cash"
    PAID_MBWAY = "paid_mbway"
    PROCESSED = "processed"
    AGREEMENT = "agreement"
    AGREEMENT_CANCELLED = "agreement_cancelled"

    @property
    def is_toggleable(self) -> bool:
        return self in (CellState.PENDING, CellState.PAID_CASH, CellState.PAID_MBWAY)


@dataclass(frozen=True)
class RegisterMismatch:
    """Cash counted by the register differs from what the clerk declared."""

    cash_total: Decimal
    deposited_amount: Decimal
    expenses_total: Decimal
    adjustment_amount: Decimal

    @property
    def declared_total(self) -> Decimal:
        return self.deposited_amount + self.expenses_total + self.adjustment_amount

    @property
    def difference(self) -> Decimal:
        return self.cash_total - self.declared_total


@dataclass(frozen=True)
class CloseOutcome:
    closed: bool
    operation: CashOperation | None = None
    mismatch: RegisterMismatch | None = None


@dataclass(frozen=True)
class CashInHand:
    cash: Decimal
    mbway: Decimal


def cash_group_clients(groups: Iterable[FeeGroup], clients: Sequence[Client]) -> list[Client]:
    """Clients of the fee group that pays at the desk."""
    groups = list(groups)
    for group in groups:
        if CASH_GROUP_NAME in group.name.casefold():
            members = set(group.client_ids)
            return [c for c in clients if c.id in members]
    raise CashierValidationError(
        f'No fee group named "{CASH_GROUP_NAME}" was found',
        details={"groups": [g.name for g in groups]},
    )


def build_report(
    payments: Iterable[CashPayment], client_names: dict[str, str]
) -> tuple[ReportLine, ...]:
    """Group payments by client and method, listing the months paid."""
    grouped: dict[tuple[str, PaymentMethod], list[CashPayment]] = {}
    ordered = sorted(payments, key=lambda p: (p.payment_year, p.payment_month))
    for payment in ordered:
        grouped.setdefault((payment.client_id, payment.payment_method), []).append(payment)

    lines = []
    for (client_id, method), group in grouped.items():
        lines.append(
            ReportLine(
                client_id=client_id,
                client_name=client_names.get(client_id, client_id),
                method=method,
                months=tuple(MONTH_LABELS[p.payment_month - 1] for p in group),
                total=sum((p.amount_paid for p in group), Decimal("0")),
            )
        )
    return tuple(lines)


class CashRegister:
    """Register grid for the clients that pay their fee at the desk."""

    def __init__(
        self,
        ledger: CashLedger,
        clients: Sequence[Client],
        expenses: SessionExpenseBook | None = None,
        vat_rate: Decimal | None = None,
        payment_mode: PaymentMethod = PaymentMethod.CASH,
    ):
        settings = get_settings()
        if vat_rate is None:
            vat_rate = Decimal(str(settings.vat_rate))
        if expenses is None:
            expenses = SessionExpenseBook(settings.cash_expenses_path)
        self.ledger = ledger
        self.clients = list(clients)
        self.expenses = expenses
        self.vat_rate = vat_rate
        self.payment_mode = payment_mode

        self.payments: list[CashPayment] = []
        self.agreements: list[CashAgreement] = []
        self.operations: list[CashOperation] = []
        self.pending = PendingChangeSet()

        self._clients_by_id = {c.id: c for c in self.clients}
        self._logger = logger.bind(component="cash_register")

    @classmethod
    def for_cash_group(
        cls,
        ledger: CashLedger,
        groups: Iterable[FeeGroup],
        clients: Sequence[Client],
        **kwargs,
    ) -> CashRegister:
        return cls(ledger, cash_group_clients(groups, clients), **kwargs)

    async def refresh(self) -> None:
        """Reload payments, plans and closed registers from the ledger."""
        self.payments = await self.ledger.list_payments()
        self.agreements = await self.ledger.list_agreements()
        self.operations = await self.ledger.list_operations()

    # -------------------------------------------------------------------------
    # Grid state
    # -------------------------------------------------------------------------

    def _client(self, client_id: str) -> Client:
        client = self._clients_by_id.get(client_id)
        if client is None:
            raise CashierValidationError(
                "Client is not part of the cash register", details={"client_id": client_id}
            )
        return client

    def persisted_payment(self, client_id: str, year: int, month: int) -> CashPayment | None:
        key = (client_id, year, month)
        for payment in self.payments:
            if cell_key(payment) == key:
                return payment
        return None

    def effective_payment(self, client_id: str, year: int, month: int) -> CashPayment | None:
        """Payment of a cell with pending edits applied."""
        op = self.pending.get((client_id, year, month))
        if isinstance(op, UpsertPayment):
            return op.payment
        if isinstance(op, DeletePayment):
            return None
        return self.persisted_payment(client_id, year, month)

    def effective_payments(self) -> list[CashPayment]:
        cells: dict[CellKey, CashPayment] = {cell_key(p): p for p in self.payments}
        for key, op in self.pending.ops.items():
            if isinstance(op, UpsertPayment):
                cells[key] = op.payment
            else:
                cells.pop(key, None)
        return list(cells.values())

    def cell_state(self, client_id: str, year: int, month: int) -> CellState:
        persisted = self.persisted_payment(client_id, year, month)
        if persisted is not None and persisted.is_processed:
            return CellState.PROCESSED

        agreement = plans.covering_agreement(client_id, year, month, self.agreements)
        if agreement is not None:
            if agreement.status is AgreementStatus.CANCELLED:
                return CellState.AGREEMENT_CANCELLED
            return CellState.AGREEMENT

        payment = self.effective_payment(client_id, year, month)
        if payment is None:
            return CellState.PENDING
        if payment.payment_method is PaymentMethod.MBWAY:
            return CellState.PAID_MBWAY
        return CellState.PAID_CASH

    def month_price(self, client_id: str, year: int, month: int) -> Decimal:
        return plans.month_price(
            self._client(client_id), year, month, self.agreements, self.vat_rate
        )

    def toggle(self, client_id: str, year: int, month: int) -> CellState:
        """Flip a cell between pending and paid in the pending buffer."""
        state = self.cell_state(client_id, year, month)
        if not state.is_toggleable:
            raise PaymentLockedError(
                f"Cell is {state.value} and cannot be toggled",
                details={"client_id": client_id, "year": year, "month": month},
            )

        key = (client_id, year, month)
        persisted = self.persisted_payment(client_id, year, month)
        if state is CellState.PENDING:
            payment = CashPayment(
                id=persisted.id if persisted is not None else str(uuid4()),
                client_id=client_id,
                payment_year=year,
                payment_month=month,
                amount_paid=self.month_price(client_id, year, month),
                payment_method=self.payment_mode,
                paid_at=datetime.now(timezone.utc),
            )
            if (
                persisted is not None
                and persisted.amount_paid == payment.amount_paid
                and persisted.payment_method is payment.payment_method
            ):
                self.pending = self.pending.without(key)
            else:
                self.pending = self.pending.with_op(key, UpsertPayment(payment))
        elif persisted is not None:
            self.pending = self.pending.with_op(key, DeletePayment(persisted))
        else:
            self.pending = self.pending.without(key)

        return self.cell_state(client_id, year, month)

    def cash_in_hand(self) -> CashInHand:
        """Unprocessed amounts per method, pending edits included."""
        cash = mbway = Decimal("0")
        for payment in self.effective_payments():
            if payment.is_processed:
                continue
            if payment.payment_method is PaymentMethod.MBWAY:
                mbway += payment.amount_paid
            else:
                cash += payment.amount_paid
        return CashInHand(cash=cash, mbway=mbway)

    # -------------------------------------------------------------------------
    # Saving and closing
    # -------------------------------------------------------------------------

    async def save_changes(self) -> list[CashPayment]:
        """Persist the pending buffer.

        On failure the buffer is left exactly as it was before the call and
        the error propagates; retrying is safe since deletes and upserts are
        keyed by payment id.
        """
        if not len(self.pending):
            return self.payments

        snapshot = self.pending
        try:
            payments = await commit(self.ledger, snapshot)
        except Exception:
            self.pending = snapshot
            self._logger.warning("save_failed", pending=len(snapshot))
            raise

        self.payments = payments
        self.pending = PendingChangeSet()
        self._logger.info(
            "payments_saved",
            deleted=len(snapshot.deletions()),
            upserted=len(snapshot.upserts()),
        )
        return payments

    async def close_register(
        self,
        deposited_amount: Decimal,
        mbway_deposited_amount: Decimal = Decimal("0"),
        adjustment_amount: Decimal = Decimal("0"),
        confirm_mismatch: Callable[[RegisterMismatch], bool] | None = None,
    ) -> CloseOutcome:
        """Close the register over every unprocessed payment.

        Pending edits are saved first. A cash balance mismatch only goes
        ahead when ``confirm_mismatch`` returns True; otherwise nothing is
        written and the returned outcome carries ``closed=False``.
        """
        if len(self.pending):
            try:
                await self.save_changes()
            except Exception as exc:
                raise CashierError(
                    "Could not save pending changes, the register was not closed"
                ) from exc

        unprocessed = [p for p in self.payments if not p.is_processed]
        expenses = self.expenses.expenses
        if not unprocessed and not expenses:
            raise CashierValidationError("There are no payments or cash expenses to close")

        deposited = Decimal(deposited_amount)
        adjustment = Decimal(adjustment_amount)
        expenses_total = self.expenses.total
        cash_total = sum(
            (p.amount_paid for p in unprocessed if p.payment_method is PaymentMethod.CASH),
            Decimal("0"),
        )

        mismatch = None
        if abs(cash_total - (deposited + expenses_total + adjustment)) > BALANCE_TOLERANCE:
            mismatch = RegisterMismatch(
                cash_total=cash_total,
                deposited_amount=deposited,
                expenses_total=expenses_total,
                adjustment_amount=adjustment,
            )
            if confirm_mismatch is None or not confirm_mismatch(mismatch):
                self._logger.info(
                    "close_aborted",
                    cash_total=str(cash_total),
                    declared_total=str(mismatch.declared_total),
                )
                return CloseOutcome(closed=False, mismatch=mismatch)

        client_names = {c.id: c.name for c in self.clients}
        request = CloseRequest(
            deposited_amount=deposited,
            mbway_deposited_amount=Decimal(mbway_deposited_amount),
            spent_amount=expenses_total,
            adjustment_amount=adjustment,
            spent_description=self.expenses.describe(),
            report_details=build_report(unprocessed, client_names),
            payment_ids=tuple(p.id for p in unprocessed),
            expense_ids=tuple(e.id for e in expenses),
        )
        operation = await self.ledger.close_register(request)

        self.expenses.clear({e.id for e in expenses})
        await self.refresh()
        self._logger.info(
            "register_closed",
            operation_id=operation.id,
            payments=len(unprocessed),
            expenses=len(expenses),
            confirmed_mismatch=mismatch is not None,
        )
        return CloseOutcome(closed=True, operation=operation, mismatch=mismatch)

    # -------------------------------------------------------------------------
    # Payment plans
    # -------------------------------------------------------------------------

    def agreement_status(self, agreement: CashAgreement) -> AgreementStatus:
        return plans.effective_status(agreement, self.payments)

    def remaining_debt(self, agreement: CashAgreement) -> Decimal:
        return plans.remaining_debt(agreement, self.payments)

    def _agreement(self, agreement_id: str) -> CashAgreement:
        for agreement in self.agreements:
            if agreement.id == agreement_id:
                return agreement
        raise CashierValidationError(
            "Unknown payment plan", details={"agreement_id": agreement_id}
        )

    async def record_installment(
        self,
        client_id: str,
        year: int,
        amount: Decimal,
        method: PaymentMethod | None = None,
    ) -> CashPayment:
        """Pay part of a plan's debt into its first free covered month.

        The amount written is capped at the remaining debt.
        """
        requested = Decimal(amount)
        if requested <= 0:
            raise CashierValidationError("Installment amount must be positive")

        agreement = plans.agreement_for(client_id, year, self.agreements)
        if agreement is None or not plans.is_active(agreement, self.payments):
            raise CashierValidationError(
                "Client has no active payment plan for this year",
                details={"client_id": client_id, "year": year},
            )

        remaining = plans.remaining_debt(agreement, self.payments)
        month = plans.next_installment_month(agreement, self.payments)
        if month is None:
            raise CashierValidationError(
                "Every month of the payment plan already has a payment",
                details={"agreement_id": agreement.id},
            )

        payment = CashPayment(
            id=str(uuid4()),
            client_id=client_id,
            payment_year=year,
            payment_month=month,
            amount_paid=min(requested, remaining),
            payment_method=method or self.payment_mode,
            paid_at=datetime.now(timezone.utc),
        )
        await self.ledger.upsert_payments([payment])
        self.pending = self.pending.without(cell_key(payment))
        self.payments = await self.ledger.list_payments()

        self._logger.info(
            "installment_recorded",
            agreement_id=agreement.id,
            month=month,
            amount=str(payment.amount_paid),
            capped=payment.amount_paid < requested,
        )
        return payment

    async def save_agreement(self, agreement: CashAgreement) -> CashAgreement:
        """Validate and store a plan, replacing the local copy on success."""
        plans.validate_agreement(agreement)
        existing = plans.agreement_for(
            agreement.client_id, agreement.agreement_year, self.agreements
        )
        if existing is not None and existing.id != agreement.id:
            raise CashierValidationError(
                "Client already has a payment plan for this year",
                details={"client_id": agreement.client_id, "year": agreement.agreement_year},
            )

        snapshot = list(self.agreements)
        try:
            stored = await self.ledger.upsert_agreement(agreement)
        except Exception:
            self.agreements = snapshot
            self._logger.warning("agreement_save_failed", agreement_id=agreement.id)
            raise

        self.agreements = [a for a in snapshot if a.id != stored.id] + [stored]
        self._logger.info("agreement_saved", agreement_id=stored.id)
        return stored

    async def cancel_agreement(self, agreement_id: str) -> CashAgreement:
        agreement = self._agreement(agreement_id)
        return await self.save_agreement(replace(agreement, status=AgreementStatus.CANCELLED))

    async def reactivate_agreement(self, agreement_id: str) -> CashAgreement:
        agreement = self._agreement(agreement_id)
        return await self.save_agreement(replace(agreement, status=AgreementStatus.ACTIVE))

    async def set_agreement_flags(
        self,
        agreement_id: str,
        called: bool | None = None,
        letter_sent: bool | None = None,
    ) -> CashAgreement:
        """Update the follow-up flags of a plan."""
        agreement = self._agreement(agreement_id)
        changes = {}
        if called is not None:
            changes["called"] = called
        if letter_sent is not None:
            changes["letter_sent"] = letter_sent
        if not changes:
            return agreement
        return await self.save_agreement(replace(agreement, **changes))
