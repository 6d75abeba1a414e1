"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("STORE_URL", "http://localhost:54321")
os.environ.setdefault("STORE_KEY", "test-store-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-key")

from practice_desk.cashier import CashRegister, InMemoryCashLedger, SessionExpenseBook  # noqa: E402
from practice_desk.config import (  # noqa: E402
    load_area_costs,
    load_staff_roster,
    load_task_catalog,
    load_turnover_brackets,
)
from practice_desk.models import (  # noqa: E402
    Client,
    MultiplierLogic,
    Staff,
    StaffRef,
    Task,
    TaskArea,
    TaskType,
    TurnoverBracket,
)


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


# === Reference data ===


@pytest.fixture
def catalog_tasks() -> list[Task]:
    return load_task_catalog()


@pytest.fixture
def area_costs() -> dict[TaskArea, Decimal]:
    return load_area_costs()


@pytest.fixture
def catalog_roster() -> list[Staff]:
    return load_staff_roster()


@pytest.fixture
def catalog_brackets() -> list[TurnoverBracket]:
    return load_turnover_brackets()


@pytest.fixture
def manual_task() -> Task:
    """Task that only applies through a client override."""
    return Task(
        id="t-manual",
        name="Consulta pontual",
        area=TaskArea.ACCOUNTING,
        type=TaskType.EXTRA,
        default_time_minutes=Decimal("30"),
        default_frequency_per_year=Decimal("1"),
        multiplier_logic=MultiplierLogic.MANUAL,
    )


@pytest.fixture
def document_task() -> Task:
    """Task sized by the client's document count."""
    return Task(
        id="t-docs",
        name="Lançar documentos",
        area=TaskArea.ACCOUNTING,
        type=TaskType.OBLIGATION,
        default_time_minutes=Decimal("4"),
        default_frequency_per_year=Decimal("12"),
        multiplier_logic=MultiplierLogic.DOCUMENT_COUNT,
    )


@pytest.fixture
def senior() -> Staff:
    return Staff(
        id="11111111-1111-4111-8111-111111111111",
        name="Ana Silva",
        hourly_cost=Decimal("20"),
        capacity_hours_per_month=Decimal("100"),
    )


@pytest.fixture
def junior() -> Staff:
    return Staff(
        id="22222222-2222-4222-8222-222222222222",
        name="João Santos",
        hourly_cost=Decimal("10"),
        capacity_hours_per_month=Decimal("160"),
    )


@pytest.fixture
def roster(senior, junior) -> list[Staff]:
    return [senior, junior]


# === Cash desk ===


@pytest.fixture
def cash_clients() -> list[Client]:
    return [
        Client(id="c1", name="Padaria Central", monthly_fee=Decimal("100")),
        Client(id="c2", name="Oficina Rocha", monthly_fee=Decimal("50")),
        Client(
            id="c3",
            name="Café Avenida",
            monthly_fee=Decimal("80"),
            responsible_staff=StaffRef.by_name("Ana Silva"),
        ),
    ]


@pytest.fixture
def ledger() -> InMemoryCashLedger:
    return InMemoryCashLedger()


@pytest.fixture
def expense_book(tmp_path) -> SessionExpenseBook:
    return SessionExpenseBook(tmp_path / "expenses.json")


@pytest.fixture
def register(ledger, cash_clients, expense_book) -> CashRegister:
    return CashRegister(
        ledger,
        cash_clients,
        expenses=expense_book,
        vat_rate=Decimal("0.23"),
    )
