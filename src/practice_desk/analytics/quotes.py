"""Fee proposals for prospective clients."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from practice_desk.analytics.fair_value import match_bracket, recommended_fee_range
from practice_desk.analytics.profitability import MINUTES_PER_HOUR, MONTHS_PER_YEAR
from practice_desk.analytics.rates import DEFAULT_HOURLY_RATE, area_rate
from practice_desk.models import MultiplierLogic, Task, TaskArea, TaskType, TurnoverBracket


@dataclass(frozen=True)
class ProspectProfile:
    """Operational size of a prospective client."""

    name: str = ""
    tax_id: str = ""
    turnover: Decimal = Decimal("0")
    employee_count: int = 0
    document_count: int = 0
    establishments: int = 1
    banks: int = 1


@dataclass(frozen=True)
class QuoteItem:
    task_id: str
    quantity: Decimal
    frequency: Decimal


@dataclass(frozen=True)
class QuoteResult:
    total_annual_hours: Decimal
    total_annual_cost: Decimal
    target_margin: Decimal
    recommended_annual_revenue: Decimal
    recommended_monthly_fee: Decimal
    fair_value_min: Decimal | None = None
    fair_value_max: Decimal | None = None


def default_quantity(task: Task, prospect: ProspectProfile) -> Decimal:
    """Starting quantity for a task; size-driven tasks never start below 1."""
    size_by_logic = {
        MultiplierLogic.EMPLOYEE_COUNT: prospect.employee_count,
        MultiplierLogic.DOCUMENT_COUNT: prospect.document_count,
        MultiplierLogic.ESTABLISHMENTS: prospect.establishments,
        MultiplierLogic.BANKS: prospect.banks,
    }
    size = size_by_logic.get(task.multiplier_logic) if task.multiplier_logic else None
    if size is not None and size > 0:
        return Decimal(size)
    return Decimal("1")


def preselect_items(tasks: Sequence[Task], prospect: ProspectProfile) -> list[QuoteItem]:
    """Items for every mandatory task, sized from the prospect."""
    return [
        QuoteItem(
            task_id=task.id,
            quantity=default_quantity(task, prospect),
            frequency=Decimal(task.default_frequency_per_year),
        )
        for task in tasks
        if task.type is TaskType.OBLIGATION
    ]


def calculate_quote(
    items: Sequence[QuoteItem],
    tasks: Sequence[Task],
    area_costs: Mapping[TaskArea, Decimal],
    target_margin: Decimal,
    prospect: ProspectProfile | None = None,
    brackets: Sequence[TurnoverBracket] = (),
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> QuoteResult:
    """Price a proposal so that its cost leaves ``target_margin`` percent.

    Raises:
        ValueError: If the target margin is 100% or more.
    """
    margin = Decimal(target_margin)
    if margin >= 100:
        raise ValueError("target margin must be below 100%")

    by_id = {task.id: task for task in tasks}
    minutes = Decimal("0")
    cost = Decimal("0")
    for item in items:
        task = by_id.get(item.task_id)
        if task is None:
            continue
        item_minutes = Decimal(task.default_time_minutes) * item.quantity * item.frequency
        minutes += item_minutes
        cost += item_minutes / MINUTES_PER_HOUR * area_rate(task.area, area_costs, default_rate)

    revenue = cost / (Decimal("1") - margin / Decimal("100"))

    fair_min = fair_max = None
    if prospect is not None:
        bracket = match_bracket(brackets, prospect.turnover)
        if bracket is not None:
            fair_min, fair_max = recommended_fee_range(bracket, prospect.turnover)

    return QuoteResult(
        total_annual_hours=minutes / MINUTES_PER_HOUR,
        total_annual_cost=cost,
        target_margin=margin,
        recommended_annual_revenue=revenue,
        recommended_monthly_fee=revenue / MONTHS_PER_YEAR,
        fair_value_min=fair_min,
        fair_value_max=fair_max,
    )
