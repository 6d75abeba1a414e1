"""Hourly rate resolution for client work.

The chain is: staff assigned on the task override, then the client's
responsible manager, then the area default. It always ends in a number.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal

from practice_desk.models import (
    Client,
    ClientTaskOverride,
    Staff,
    StaffRef,
    Task,
    TaskArea,
)

DEFAULT_HOURLY_RATE = Decimal("25")

# Calls and travel are costed as accounting work when nobody manages the client.
OPERATIONAL_AREA = TaskArea.ACCOUNTING


def find_staff_by_id(staff_id: str | None, roster: Sequence[Staff]) -> Staff | None:
    if not staff_id:
        return None
    for member in roster:
        if member.id == staff_id:
            return member
    return None


def resolve_staff(ref: StaffRef | None, roster: Sequence[Staff]) -> Staff | None:
    """Return the first roster member the reference points at."""
    if ref is None:
        return None
    for member in roster:
        if ref.refers_to(member):
            return member
    return None


def area_rate(
    area: TaskArea,
    area_costs: Mapping[TaskArea, Decimal],
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> Decimal:
    """Configured cost of an area; unset or zero costs use the default."""
    cost = area_costs.get(area)
    if not cost:
        return default_rate
    return Decimal(cost)


def manager_rate(
    client: Client,
    roster: Sequence[Staff],
    area_costs: Mapping[TaskArea, Decimal],
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> Decimal:
    """Rate used for operational time (calls, travel) on a client."""
    manager = resolve_staff(client.responsible_staff, roster)
    if manager is not None:
        return manager.hourly_cost
    return area_rate(OPERATIONAL_AREA, area_costs, default_rate)


def resolve_hourly_rate(
    client: Client,
    task: Task,
    override: ClientTaskOverride | None,
    roster: Sequence[Staff],
    area_costs: Mapping[TaskArea, Decimal],
    default_rate: Decimal = DEFAULT_HOURLY_RATE,
) -> Decimal:
    """Rate for one task performed for one client."""
    if override is not None:
        assigned = find_staff_by_id(override.assigned_staff_id, roster)
        if assigned is not None:
            return assigned.hourly_cost

    manager = resolve_staff(client.responsible_staff, roster)
    if manager is not None:
        return manager.hourly_cost

    return area_rate(task.area, area_costs, default_rate)
