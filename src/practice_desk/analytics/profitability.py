"""Client profitability: annual workload, cost, margin and fair value.

All functions are pure and never raise for odd input. Missing rates fall
back to defaults, zero revenue gives zero percentages and an uncovered
turnover gives no fair-value analysis.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

import structlog

from practice_desk.analytics.fair_value import TurnoverAnalysis, analyze_turnover
from practice_desk.analytics.rates import (
    DEFAULT_HOURLY_RATE,
    manager_rate,
    resolve_hourly_rate,
)
from practice_desk.models import (
    Client,
    ClientTaskOverride,
    MultiplierLogic,
    Staff,
    Task,
    TaskArea,
    TurnoverBracket,
)

logger = structlog.get_logger(__name__)

MINUTES_PER_HOUR = Decimal("60")
MONTHS_PER_YEAR = Decimal("12")
MINUTES_PER_TRIP = Decimal("60")

CRITICAL_MARGIN = Decimal("10")
HEALTHY_MARGIN = Decimal("30")


class SuggestionTier(str, Enum):
    CRITICAL = "critical"
    ATTENTION = "attention"
    HEALTHY = "healthy"

    @property
    def message(self) -> str:
        return _TIER_MESSAGES[self]


_TIER_MESSAGES = {
    SuggestionTier.CRITICAL: (
        "Fee below cost or at minimum margin. Renegotiate urgently or optimise the work."
    ),
    SuggestionTier.ATTENTION: (
        "Low margin. Monitor extra hours and consider a small annual adjustment."
    ),
    SuggestionTier.HEALTHY: "Profitable client. Keep the current service level.",
}


@dataclass(frozen=True)
class TaskCostLine:
    """Annual workload of one catalog task for one client."""

    task_id: str
    area: TaskArea
    multiplier: Decimal
    frequency: Decimal
    annual_minutes: Decimal
    hourly_rate: Decimal
    annual_cost: Decimal


@dataclass
class CostAccumulator:
    total_minutes: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    lines: list[TaskCostLine] = field(default_factory=list)

    def add(self, minutes: Decimal, rate: Decimal) -> Decimal:
        cost = minutes / MINUTES_PER_HOUR * rate
        self.total_minutes += minutes
        self.total_cost += cost
        return cost


@dataclass(frozen=True)
class ProfitabilityResult:
    total_annual_hours: Decimal
    total_annual_cost: Decimal
    total_annual_revenue: Decimal
    profit: Decimal
    profitability: Decimal
    hourly_return: Decimal
    tier: SuggestionTier
    used_hourly_rate: Decimal
    task_lines: tuple[TaskCostLine, ...] = ()
    turnover_analysis: TurnoverAnalysis | None = None

    @property
    def suggestion(self) -> str:
        return self.tier.message


def effective_multiplier(
    task: Task, override: ClientTaskOverride | None, client: Client
) -> Decimal:
    """Quantity driving a task's cost for a client.

    A non-zero override multiplier wins; otherwise a non-manual multiplier
    logic reads the client attribute it names; otherwise the task does not
    apply (0).
    """
    if override is not None and override.multiplier:
        return Decimal(override.multiplier)
    logic = task.multiplier_logic
    if logic is not None and logic is not MultiplierLogic.MANUAL:
        return client.quantity_for(logic)
    return Decimal("0")


def effective_frequency(task: Task, override: ClientTaskOverride | None) -> Decimal:
    if override is not None:
        return Decimal(override.frequency_per_year)
    return Decimal(task.default_frequency_per_year)


def task_annual_minutes(task: Task, multiplier: Decimal, frequency: Decimal) -> Decimal:
    return Decimal(task.default_time_minutes) * multiplier * frequency


def aggregate_task_costs(
    client: Client,
    tasks: Sequence[Task],
    roster: Sequence[Staff],
    area_costs: Mapping[TaskArea, Decimal],
    accumulator: CostAccumulator | None = None,
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> CostAccumulator:
    """Accumulate annual minutes and cost over the whole task catalog."""
    acc = accumulator or CostAccumulator()
    for task in tasks:
        override = client.override_for(task.id)
        multiplier = effective_multiplier(task, override, client)
        if multiplier <= 0:
            continue

        frequency = effective_frequency(task, override)
        minutes = task_annual_minutes(task, multiplier, frequency)
        rate = resolve_hourly_rate(client, task, override, roster, area_costs, default_rate)
        cost = acc.add(minutes, rate)
        acc.lines.append(
            TaskCostLine(
                task_id=task.id,
                area=task.area,
                multiplier=multiplier,
                frequency=frequency,
                annual_minutes=minutes,
                hourly_rate=rate,
                annual_cost=cost,
            )
        )
    return acc


def operational_minutes(client: Client) -> tuple[Decimal, Decimal]:
    """Annual (call minutes, travel minutes) for a client."""
    calls = Decimal(max(client.call_time_balance, 0)) * MONTHS_PER_YEAR
    travel = Decimal(max(client.travel_count, 0)) * MINUTES_PER_TRIP
    return calls, travel


def add_operational_costs(
    client: Client, rate: Decimal, accumulator: CostAccumulator
) -> CostAccumulator:
    """Fold phone support and travel time in at the manager rate."""
    calls, travel = operational_minutes(client)
    if calls > 0:
        accumulator.add(calls, rate)
    if travel > 0:
        accumulator.add(travel, rate)
    return accumulator


def classify_margin(profitability: Decimal) -> SuggestionTier:
    if profitability < CRITICAL_MARGIN:
        return SuggestionTier.CRITICAL
    if profitability < HEALTHY_MARGIN:
        return SuggestionTier.ATTENTION
    return SuggestionTier.HEALTHY


def calculate_client_profitability(
    client: Client,
    tasks: Sequence[Task],
    area_costs: Mapping[TaskArea, Decimal],
    roster: Sequence[Staff] = (),
    brackets: Sequence[TurnoverBracket] = (),
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> ProfitabilityResult:
    """Compute the annual profitability picture of one client."""
    base_rate = manager_rate(client, roster, area_costs, default_rate)

    acc = aggregate_task_costs(client, tasks, roster, area_costs, default_rate=default_rate)
    add_operational_costs(client, base_rate, acc)

    hours = acc.total_minutes / MINUTES_PER_HOUR
    revenue = Decimal(client.monthly_fee) * MONTHS_PER_YEAR
    profit = revenue - acc.total_cost
    profitability = profit / revenue * Decimal("100") if revenue > 0 else Decimal("0")
    hourly_return = revenue / hours if hours > 0 else Decimal("0")

    tier = classify_margin(profitability)
    turnover_analysis = analyze_turnover(
        Decimal(client.turnover), Decimal(client.monthly_fee), brackets
    )

    logger.debug(
        "client_profitability_calculated",
        client_id=client.id,
        task_lines=len(acc.lines),
        annual_hours=str(hours),
        profitability=str(profitability),
        tier=tier.value,
    )

    return ProfitabilityResult(
        total_annual_hours=hours,
        total_annual_cost=acc.total_cost,
        total_annual_revenue=revenue,
        profit=profit,
        profitability=profitability,
        hourly_return=hourly_return,
        tier=tier,
        used_hourly_rate=base_rate,
        task_lines=tuple(acc.lines),
        turnover_analysis=turnover_analysis,
    )
