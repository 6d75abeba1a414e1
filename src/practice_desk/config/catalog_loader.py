"""Utilities for loading the bundled reference catalog from YAML."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from practice_desk.models import (
    MultiplierLogic,
    Staff,
    Task,
    TaskArea,
    TaskType,
    TurnoverBracket,
)

CATALOG_PATH = Path(__file__).resolve().parent / "catalog.yaml"


def _to_decimal(value: Any, where: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"{where}: invalid number {value!r}") from exc


@lru_cache
def _load_raw(path: Path = CATALOG_PATH) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: top level must be a mapping")
    return data


def load_area_costs(path: Path = CATALOG_PATH) -> dict[TaskArea, Decimal]:
    """Load the default hourly cost of each task area."""
    raw = _load_raw(path).get("area_costs") or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: area_costs must be a mapping")

    costs: dict[TaskArea, Decimal] = {}
    for key, value in raw.items():
        try:
            area = TaskArea(key)
        except ValueError as exc:
            raise ValueError(f"{path.name}: unknown area {key!r}") from exc
        costs[area] = _to_decimal(value, f"{path.name}: area_costs[{key!r}]")
    return costs


def load_turnover_brackets(path: Path = CATALOG_PATH) -> list[TurnoverBracket]:
    """Load fair-value brackets in file order."""
    raw = _load_raw(path).get("turnover_brackets") or []
    if not isinstance(raw, list):
        raise ValueError(f"{path.name}: turnover_brackets must be a list")

    brackets: list[TurnoverBracket] = []
    for idx, item in enumerate(raw):
        where = f"{path.name}: turnover_brackets[{idx}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where} must be a mapping")
        bracket = TurnoverBracket(
            id=str(item.get("id") or f"tb{idx + 1}"),
            min_turnover=_to_decimal(item.get("min_turnover"), where),
            max_turnover=_to_decimal(item.get("max_turnover"), where),
            min_percent=_to_decimal(item.get("min_percent"), where),
            max_percent=_to_decimal(item.get("max_percent"), where),
        )
        if bracket.min_turnover > bracket.max_turnover:
            raise ValueError(f"{where}: min_turnover exceeds max_turnover")
        if bracket.min_percent > bracket.max_percent:
            raise ValueError(f"{where}: min_percent exceeds max_percent")
        brackets.append(bracket)
    return brackets


def parse_multiplier_logic(value: Any, where: str) -> MultiplierLogic | None:
    """Validate a multiplier logic tag against the numeric client attributes."""
    if value is None or value == "":
        return None
    try:
        return MultiplierLogic(value)
    except ValueError as exc:
        raise ValueError(f"{where}: unknown multiplier_logic {value!r}") from exc


def load_task_catalog(path: Path = CATALOG_PATH) -> list[Task]:
    """Load the default task catalog."""
    raw = _load_raw(path).get("tasks") or []
    if not isinstance(raw, list):
        raise ValueError(f"{path.name}: tasks must be a list")

    tasks: list[Task] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        where = f"{path.name}: tasks[{idx}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where} must be a mapping")
        task_id = item.get("id")
        if not task_id or not item.get("name"):
            raise ValueError(f"{where} missing id/name")
        if task_id in seen:
            raise ValueError(f"{where}: duplicate task id {task_id!r}")
        seen.add(task_id)

        try:
            area = TaskArea(item.get("area"))
            task_type = TaskType(item.get("type"))
        except ValueError as exc:
            raise ValueError(f"{where}: {exc}") from exc

        tasks.append(
            Task(
                id=str(task_id),
                name=str(item["name"]),
                area=area,
                type=task_type,
                default_time_minutes=_to_decimal(item.get("default_time_minutes", 0), where),
                default_frequency_per_year=_to_decimal(
                    item.get("default_frequency_per_year", 1), where
                ),
                multiplier_logic=parse_multiplier_logic(item.get("multiplier_logic"), where),
            )
        )
    return tasks


def load_staff_roster(path: Path = CATALOG_PATH) -> list[Staff]:
    """Load the sample staff roster with hourly costs derived from pay data."""
    from practice_desk.analytics.staff import with_derived_hourly_cost

    raw = _load_raw(path).get("staff") or []
    if not isinstance(raw, list):
        raise ValueError(f"{path.name}: staff must be a list")

    roster: list[Staff] = []
    for idx, item in enumerate(raw):
        where = f"{path.name}: staff[{idx}]"
        if not isinstance(item, dict) or not item.get("id") or not item.get("name"):
            raise ValueError(f"{where} must be a mapping with id and name")
        try:
            areas = tuple(TaskArea(a) for a in item.get("assigned_areas") or [])
        except ValueError as exc:
            raise ValueError(f"{where}: {exc}") from exc
        member = Staff(
            id=str(item["id"]),
            name=str(item["name"]),
            role=str(item.get("role") or "Colaborador"),
            email=str(item.get("email") or ""),
            base_salary=_to_decimal(item.get("base_salary", 0), where),
            social_charges_percent=_to_decimal(item.get("social_charges_percent", "23.75"), where),
            meal_allowance=_to_decimal(item.get("meal_allowance", 0), where),
            other_monthly_costs=_to_decimal(item.get("other_monthly_costs", 0), where),
            capacity_hours_per_month=_to_decimal(item.get("capacity_hours_per_month", 160), where),
            assigned_areas=areas,
        )
        roster.append(with_derived_hourly_cost(member))
    return roster
