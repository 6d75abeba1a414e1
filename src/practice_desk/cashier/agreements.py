"""Payment plans: pricing, outstanding debt and derived status.

A plan covers months 1..paid_until_month of its year. The outstanding debt
is ``debt_amount`` minus the payments recorded in those months, and a plan
reads as completed once that reaches zero. Completion is never stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

from practice_desk.cashier.errors import CashierValidationError
from practice_desk.models import AgreementStatus, CashAgreement, CashPayment, Client

CENT = Decimal("0.01")


def validate_agreement(agreement: CashAgreement) -> None:
    """Reject plans that cannot be saved."""
    if agreement.monthly_amount <= 0:
        raise CashierValidationError("Monthly amount must be positive")
    if not 1 <= agreement.paid_until_month <= 12:
        raise CashierValidationError("Paid-until month must be between 1 and 12")
    if agreement.debt_amount < 0:
        raise CashierValidationError("Debt amount cannot be negative")
    if not 2000 <= agreement.agreement_year <= 3000:
        raise CashierValidationError("Agreement year out of range")


def new_agreement(
    client_id: str,
    agreement_year: int,
    paid_until_month: int,
    monthly_amount: Decimal,
    debt_amount: Decimal | None = None,
    notes: str = "",
) -> CashAgreement:
    """Build a validated plan; the debt defaults to every covered month."""
    monthly = Decimal(monthly_amount)
    debt = Decimal(debt_amount) if debt_amount is not None else monthly * paid_until_month
    agreement = CashAgreement(
        id=str(uuid4()),
        client_id=client_id,
        agreement_year=agreement_year,
        paid_until_month=paid_until_month,
        monthly_amount=monthly,
        debt_amount=debt,
        notes=notes,
        created_at=datetime.now(timezone.utc),
    )
    validate_agreement(agreement)
    return agreement


def agreement_for(
    client_id: str, year: int, agreements: Iterable[CashAgreement]
) -> CashAgreement | None:
    """The plan of a client for a year (at most one exists)."""
    for agreement in agreements:
        if agreement.client_id == client_id and agreement.agreement_year == year:
            return agreement
    return None


def covering_agreement(
    client_id: str, year: int, month: int, agreements: Iterable[CashAgreement]
) -> CashAgreement | None:
    agreement = agreement_for(client_id, year, agreements)
    if agreement is not None and agreement.covers(year, month):
        return agreement
    return None


def covered_payments(
    agreement: CashAgreement, payments: Iterable[CashPayment]
) -> list[CashPayment]:
    return [
        p
        for p in payments
        if p.client_id == agreement.client_id
        and agreement.covers(p.payment_year, p.payment_month)
    ]


def amount_settled(agreement: CashAgreement, payments: Iterable[CashPayment]) -> Decimal:
    return sum((p.amount_paid for p in covered_payments(agreement, payments)), Decimal("0"))


def remaining_debt(agreement: CashAgreement, payments: Iterable[CashPayment]) -> Decimal:
    """Debt still owed under the plan, never below zero."""
    remaining = Decimal(agreement.debt_amount) - amount_settled(agreement, payments)
    return max(remaining, Decimal("0"))


def effective_status(
    agreement: CashAgreement, payments: Iterable[CashPayment]
) -> AgreementStatus:
    """Stored status, except that a settled plan reads as completed."""
    if agreement.status is AgreementStatus.CANCELLED:
        return AgreementStatus.CANCELLED
    if remaining_debt(agreement, payments) <= 0:
        return AgreementStatus.COMPLETED
    return AgreementStatus.ACTIVE


def is_active(agreement: CashAgreement, payments: Iterable[CashPayment]) -> bool:
    return effective_status(agreement, payments) is AgreementStatus.ACTIVE


def month_price(
    client: Client,
    year: int,
    month: int,
    agreements: Sequence[CashAgreement],
    vat_rate: Decimal,
) -> Decimal:
    """Price charged at the desk for one month of a client's fee.

    Months under a non-cancelled plan are charged at the plan's monthly
    amount; other months at the monthly fee plus VAT.
    """
    agreement = covering_agreement(client.id, year, month, agreements)
    if agreement is not None and agreement.status is not AgreementStatus.CANCELLED:
        return Decimal(agreement.monthly_amount)
    gross = Decimal(client.monthly_fee) * (Decimal("1") + Decimal(vat_rate))
    return gross.quantize(CENT, rounding=ROUND_HALF_UP)


def next_installment_month(
    agreement: CashAgreement, payments: Iterable[CashPayment]
) -> int | None:
    """First covered month without a live payment, or None if all are taken."""
    taken = {p.payment_month for p in covered_payments(agreement, payments)}
    for month in range(1, agreement.paid_until_month + 1):
        if month not in taken:
            return month
    return None
