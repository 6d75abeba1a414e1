"""Staff cost derivation and per-staff workload rollup."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal

import structlog

from practice_desk.analytics.profitability import (
    MINUTES_PER_HOUR,
    MONTHS_PER_YEAR,
    effective_frequency,
    effective_multiplier,
    operational_minutes,
    task_annual_minutes,
)
from practice_desk.analytics.rates import find_staff_by_id, resolve_staff
from practice_desk.models import Client, ClientTaskOverride, Staff, Task

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def total_monthly_cost(staff: Staff) -> Decimal:
    """Salary plus social charges, meal allowance and other monthly costs."""
    salary = Decimal(staff.base_salary)
    charges = salary * Decimal(staff.social_charges_percent) / Decimal("100")
    return salary + charges + Decimal(staff.meal_allowance) + Decimal(staff.other_monthly_costs)


def derive_hourly_cost(staff: Staff) -> Decimal:
    """Monthly cost spread over capacity hours, rounded to cents."""
    capacity = Decimal(staff.capacity_hours_per_month)
    if capacity <= 0:
        return Decimal("0.00")
    return (total_monthly_cost(staff) / capacity).quantize(CENT, rounding=ROUND_HALF_UP)


def with_derived_hourly_cost(staff: Staff) -> Staff:
    """Return a copy whose ``hourly_cost`` agrees with its pay inputs."""
    return replace(staff, hourly_cost=derive_hourly_cost(staff))


@dataclass(frozen=True)
class StaffStats:
    staff_id: str
    staff_name: str
    client_count: int
    total_annual_hours: Decimal
    allocated_hours_month: Decimal
    capacity_utilization: Decimal
    total_revenue: Decimal
    total_cost: Decimal
    profitability: Decimal


def _assigned_staff_id(
    override: ClientTaskOverride | None, roster: Sequence[Staff]
) -> str | None:
    if override is None or not override.assigned_staff_id:
        return None
    if not roster:
        return override.assigned_staff_id
    assigned = find_staff_by_id(override.assigned_staff_id, roster)
    return assigned.id if assigned is not None else None


def credited_minutes(
    staff: Staff,
    client: Client,
    tasks: Sequence[Task],
    roster: Sequence[Staff],
) -> Decimal:
    """Annual minutes of ``client`` work credited to ``staff``.

    A task is credited to the staff member assigned on its override, or to
    the client's manager when the task has no assignment. Assignments to
    staff missing from a non-empty ``roster`` count as no assignment. The
    manager also carries the client's call and travel time.
    """
    manager = resolve_staff(client.responsible_staff, roster or (staff,))
    is_manager = manager is not None and manager.id == staff.id

    minutes = Decimal("0")
    for task in tasks:
        override = client.override_for(task.id)
        multiplier = effective_multiplier(task, override, client)
        if multiplier <= 0:
            continue

        assigned_id = _assigned_staff_id(override, roster)
        if assigned_id is not None:
            credited = assigned_id == staff.id
        else:
            credited = is_manager
        if credited:
            minutes += task_annual_minutes(task, multiplier, effective_frequency(task, override))

    if is_manager:
        calls, travel = operational_minutes(client)
        minutes += calls + travel
    return minutes


def calculate_staff_stats(
    staff: Staff,
    clients: Sequence[Client],
    tasks: Sequence[Task],
    roster: Sequence[Staff] = (),
) -> StaffStats:
    """Roll up hours, managed revenue and capacity use for one staff member.

    Hours follow task assignment; revenue follows client management and is
    never split between staff.
    """
    total_minutes = Decimal("0")
    revenue = Decimal("0")
    client_count = 0
    for client in clients:
        total_minutes += credited_minutes(staff, client, tasks, roster)
        manager = resolve_staff(client.responsible_staff, roster or (staff,))
        if manager is not None and manager.id == staff.id:
            client_count += 1
            revenue += Decimal(client.monthly_fee) * MONTHS_PER_YEAR

    hours = total_minutes / MINUTES_PER_HOUR
    allocated_month = hours / MONTHS_PER_YEAR
    capacity = Decimal(staff.capacity_hours_per_month)
    utilization = allocated_month / capacity * Decimal("100") if capacity > 0 else Decimal("0")
    cost = hours * Decimal(staff.hourly_cost)
    profitability = (revenue - cost) / revenue * Decimal("100") if revenue > 0 else Decimal("0")

    logger.debug(
        "staff_stats_calculated",
        staff_id=staff.id,
        clients=client_count,
        annual_hours=str(hours),
    )

    return StaffStats(
        staff_id=staff.id,
        staff_name=staff.name,
        client_count=client_count,
        total_annual_hours=hours,
        allocated_hours_month=allocated_month,
        capacity_utilization=utilization,
        total_revenue=revenue,
        total_cost=cost,
        profitability=profitability,
    )


def calculate_team_stats(
    roster: Sequence[Staff], clients: Sequence[Client], tasks: Sequence[Task]
) -> list[StaffStats]:
    return [calculate_staff_stats(member, clients, tasks, roster) for member in roster]
