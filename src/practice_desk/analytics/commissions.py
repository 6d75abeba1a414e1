"""Insurance commission tracking over accepted policies."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from practice_desk.models import InsurancePolicy, PolicyStatus


@dataclass(frozen=True)
class CommissionSummary:
    paid: Decimal
    pending: Decimal
    total_premium: Decimal


def commission_value(policy: InsurancePolicy) -> Decimal:
    return policy.net_premium * Decimal(policy.commission_rate) / Decimal("100")


def _accepted(policies: Iterable[InsurancePolicy]) -> list[InsurancePolicy]:
    return [p for p in policies if p.status is PolicyStatus.ACCEPTED]


def summarize_commissions(policies: Iterable[InsurancePolicy]) -> CommissionSummary:
    """Split commissions of accepted policies into paid and pending."""
    paid = pending = premium = Decimal("0")
    for policy in _accepted(policies):
        value = commission_value(policy)
        if policy.commission_paid:
            paid += value
        else:
            pending += value
        premium += policy.net_premium
    return CommissionSummary(paid=paid, pending=pending, total_premium=premium)


def quarterly_premiums(policies: Iterable[InsurancePolicy]) -> dict[str, Decimal]:
    """Net premium of accepted policies per calendar quarter of the policy date."""
    quarters = {"Q1": Decimal("0"), "Q2": Decimal("0"), "Q3": Decimal("0"), "Q4": Decimal("0")}
    for policy in _accepted(policies):
        quarter = (policy.policy_date.month - 1) // 3 + 1
        quarters[f"Q{quarter}"] += policy.net_premium
    return quarters
