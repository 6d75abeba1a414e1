"""Domain records shared by the analytics, cash desk and store layers.

Enum values are the strings stored in the hosted database, so rows can be
mapped without translation tables.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class TaskArea(str, Enum):
    """Task category with its own default hourly cost."""

    ACCOUNTING = "Contabilidade"
    HR = "Recursos Humanos"
    ADMIN = "Administrativo"
    CONSULTING = "Consultoria"
    TAX = "Fiscalidade"
    MANAGEMENT = "Gestão"


class TaskType(str, Enum):
    OBLIGATION = "Obrigação"
    NEED = "Necessidade"
    EXTRA = "Extra"


class MultiplierLogic(str, Enum):
    """Client attribute that drives a task's quantity."""

    MANUAL = "manual"
    EMPLOYEE_COUNT = "employeeCount"
    DOCUMENT_COUNT = "documentCount"
    ESTABLISHMENTS = "establishments"
    BANKS = "banks"

    @property
    def client_attribute(self) -> str | None:
        """Name of the numeric Client attribute, or None for manual tasks."""
        return _MULTIPLIER_ATTRIBUTES.get(self)


_MULTIPLIER_ATTRIBUTES = {
    MultiplierLogic.EMPLOYEE_COUNT: "employee_count",
    MultiplierLogic.DOCUMENT_COUNT: "document_count",
    MultiplierLogic.ESTABLISHMENTS: "establishments",
    MultiplierLogic.BANKS: "banks",
}


class ClientStatus(str, Enum):
    ACTIVE = "Ativo"
    UNDER_REVIEW = "Em Análise"
    AT_RISK = "Risco"
    CANCELLED = "Cancelado"


class PaymentMethod(str, Enum):
    CASH = "Numerário"
    MBWAY = "MB Way"


class AgreementStatus(str, Enum):
    ACTIVE = "Ativo"
    CANCELLED = "Anulado"
    COMPLETED = "Concluido"


class PolicyStatus(str, Enum):
    PROPOSAL = "Proposta"
    ACCEPTED = "Aceite"


@dataclass(frozen=True)
class Task:
    """Catalog entry for a recurring piece of work."""

    id: str
    name: str
    area: TaskArea
    type: TaskType
    default_time_minutes: Decimal
    default_frequency_per_year: Decimal
    multiplier_logic: MultiplierLogic | None = None


@dataclass(frozen=True)
class ClientTaskOverride:
    """Client-specific deviation from a task's defaults."""

    task_id: str
    frequency_per_year: Decimal
    multiplier: Decimal = Decimal("0")
    assigned_staff_id: str | None = None


@dataclass(frozen=True)
class StaffRef:
    """Reference to a staff member, either by id or by legacy display name."""

    kind: str
    value: str

    BY_ID = "id"
    BY_NAME = "name"

    @classmethod
    def by_id(cls, staff_id: str) -> StaffRef:
        return cls(cls.BY_ID, staff_id)

    @classmethod
    def by_name(cls, name: str) -> StaffRef:
        return cls(cls.BY_NAME, name)

    @classmethod
    def parse(cls, raw: str | None, known_ids: Iterable[str] = ()) -> StaffRef | None:
        """Parse a stored ``responsible_staff`` value.

        UUID-shaped values and values matching a known staff id are ids;
        anything else is treated as a legacy name.
        """
        if raw is None:
            return None
        value = str(raw).strip()
        if not value:
            return None
        if _UUID_RE.match(value) or value in set(known_ids):
            return cls.by_id(value)
        return cls.by_name(value)

    def refers_to(self, staff: Staff) -> bool:
        if self.kind == self.BY_ID:
            return staff.id == self.value
        return staff.name == self.value


@dataclass(frozen=True)
class Staff:
    """Staff member with the inputs of their hourly cost."""

    id: str
    name: str
    role: str = "Colaborador"
    email: str = ""
    phone: str = ""
    base_salary: Decimal = Decimal("0")
    social_charges_percent: Decimal = Decimal("23.75")
    meal_allowance: Decimal = Decimal("0")
    other_monthly_costs: Decimal = Decimal("0")
    capacity_hours_per_month: Decimal = Decimal("160")
    hourly_cost: Decimal = Decimal("0")
    assigned_areas: tuple[TaskArea, ...] = ()


@dataclass(frozen=True)
class ComplexityIndicators:
    """Display-only hints used by advisory text."""

    delivers_organized_docs: bool | None = None
    vat_refunds: bool | None = None
    has_ine_report: bool | None = None
    has_cost_centers: bool | None = None
    has_international_ops: bool | None = None
    has_management_reports: bool | None = None
    supplier_count: int | None = None
    customer_count: int | None = None
    communication_count: int | None = None
    meeting_count: int | None = None
    previous_year_profit: Decimal | None = None


@dataclass(frozen=True)
class AiAnalysis:
    """Cached advisory result for a client."""

    advice_text: str
    suggested_fee: int


@dataclass
class Client:
    """Firm client. Saved as a whole record after editing."""

    id: str
    name: str
    tax_id: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    sector: str = "Geral"
    entity_type: str = ""
    monthly_fee: Decimal = Decimal("0")
    responsible_staff: StaffRef | None = None
    employee_count: int = 0
    document_count: int = 0
    establishments: int = 1
    banks: int = 1
    turnover: Decimal = Decimal("0")
    call_time_balance: int = 0
    travel_count: int = 0
    complexity: ComplexityIndicators = field(default_factory=ComplexityIndicators)
    tasks: list[ClientTaskOverride] = field(default_factory=list)
    status: ClientStatus = ClientStatus.ACTIVE
    contract_renewal_date: date | None = None
    ai_analysis: AiAnalysis | None = None

    def override_for(self, task_id: str) -> ClientTaskOverride | None:
        for override in self.tasks:
            if override.task_id == task_id:
                return override
        return None

    def quantity_for(self, logic: MultiplierLogic | None) -> Decimal:
        """Return the client attribute named by ``logic``, or 0."""
        if logic is None:
            return Decimal("0")
        attribute = logic.client_attribute
        if attribute is None:
            return Decimal("0")
        return Decimal(getattr(self, attribute) or 0)


@dataclass(frozen=True)
class TurnoverBracket:
    id: str
    min_turnover: Decimal
    max_turnover: Decimal
    min_percent: Decimal
    max_percent: Decimal

    def contains(self, turnover: Decimal) -> bool:
        return self.min_turnover <= turnover <= self.max_turnover


@dataclass(frozen=True)
class FeeGroup:
    id: str
    name: str
    description: str = ""
    client_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class CashPayment:
    """Monthly fee payment taken at the cash desk."""

    id: str
    client_id: str
    payment_year: int
    payment_month: int
    amount_paid: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    paid_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cash_operation_id: str | None = None

    @property
    def is_processed(self) -> bool:
        return self.cash_operation_id is not None


@dataclass(frozen=True)
class CashAgreement:
    """Payment plan overriding the monthly price for months 1..paid_until_month."""

    id: str
    client_id: str
    agreement_year: int
    paid_until_month: int
    monthly_amount: Decimal
    debt_amount: Decimal
    status: AgreementStatus = AgreementStatus.ACTIVE
    notes: str = ""
    called: bool = False
    letter_sent: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def covers(self, year: int, month: int) -> bool:
        return year == self.agreement_year and 1 <= month <= self.paid_until_month


@dataclass(frozen=True)
class ReportLine:
    """Payments of one client with one method inside a closed register."""

    client_id: str
    client_name: str
    method: PaymentMethod
    months: tuple[str, ...]
    total: Decimal


@dataclass(frozen=True)
class CashOperation:
    """Immutable snapshot created when the register is closed."""

    id: str
    created_at: datetime
    deposited_amount: Decimal
    spent_amount: Decimal
    mbway_deposited_amount: Decimal = Decimal("0")
    adjustment_amount: Decimal = Decimal("0")
    spent_description: str = ""
    report_details: tuple[ReportLine, ...] = ()

    def received(self, method: PaymentMethod) -> Decimal:
        return sum(
            (line.total for line in self.report_details if line.method == method),
            Decimal("0"),
        )


@dataclass(frozen=True)
class SessionExpense:
    """Cash taken out of the drawer during the current session."""

    id: str
    amount: Decimal
    description: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class InsurancePolicy:
    id: str
    policy_date: date
    premium_value: Decimal
    commission_rate: Decimal
    commission_paid: bool = False
    status: PolicyStatus = PolicyStatus.PROPOSAL
    client_id: str | None = None
    net_premium_value: Decimal | None = None
    policy_type: str = ""
    insurance_provider: str = ""

    @property
    def net_premium(self) -> Decimal:
        if self.net_premium_value is not None:
            return self.net_premium_value
        return self.premium_value
