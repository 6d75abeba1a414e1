"""Conversion between store rows and domain records.

Rows written by older versions of the application use Portuguese column
names (``nome``, ``morada``, ``numero_documentos``); readers accept both
spellings and writers fill both.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from practice_desk.models import (
    AgreementStatus,
    AiAnalysis,
    CashAgreement,
    CashOperation,
    CashPayment,
    Client,
    ClientStatus,
    ClientTaskOverride,
    ComplexityIndicators,
    FeeGroup,
    InsurancePolicy,
    MultiplierLogic,
    PaymentMethod,
    PolicyStatus,
    ReportLine,
    Staff,
    StaffRef,
    Task,
    TaskArea,
    TaskType,
    TurnoverBracket,
)

Row = dict[str, Any]


def _first(row: Row, *keys: str) -> Any:
    """First non-empty value among ``keys``."""
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _dec(value: Any, default: str = "0") -> Decimal:
    if value in (None, ""):
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(default)


def _int(value: Any, default: int = 0) -> int:
    if value in (None, ""):
        return default
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return default


def _num(value: Decimal) -> float:
    return float(value)


def _datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _enum(enum_cls: Any, value: Any, default: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


# === Clients ===


def override_from_dict(item: Row) -> ClientTaskOverride:
    return ClientTaskOverride(
        task_id=str(_first(item, "taskId", "task_id")),
        frequency_per_year=_dec(_first(item, "frequencyPerYear", "frequency_per_year")),
        multiplier=_dec(item.get("multiplier")),
        assigned_staff_id=_first(item, "assignedStaffId", "assigned_staff_id"),
    )


def override_to_dict(override: ClientTaskOverride) -> Row:
    data: Row = {
        "taskId": override.task_id,
        "frequencyPerYear": _num(override.frequency_per_year),
        "multiplier": _num(override.multiplier),
    }
    if override.assigned_staff_id:
        data["assignedStaffId"] = override.assigned_staff_id
    return data


def analysis_from_dict(item: Row | None) -> AiAnalysis | None:
    if not item:
        return None
    advice = _first(item, "parecer", "advice_text")
    fee = _first(item, "avenca_sugerida", "suggested_fee")
    if advice is None or fee is None:
        return None
    return AiAnalysis(advice_text=str(advice), suggested_fee=_int(fee))


def analysis_to_dict(analysis: AiAnalysis | None) -> Row | None:
    if analysis is None:
        return None
    return {"parecer": analysis.advice_text, "avenca_sugerida": analysis.suggested_fee}


_COMPLEXITY_FLAGS = (
    "delivers_organized_docs",
    "vat_refunds",
    "has_ine_report",
    "has_cost_centers",
    "has_international_ops",
    "has_management_reports",
)
_COMPLEXITY_COUNTS = ("supplier_count", "customer_count", "communication_count", "meeting_count")


def complexity_from_row(row: Row) -> ComplexityIndicators:
    values: dict[str, Any] = {}
    for name in _COMPLEXITY_FLAGS:
        if row.get(name) is not None:
            values[name] = bool(row[name])
    for name in _COMPLEXITY_COUNTS:
        if row.get(name) is not None:
            values[name] = _int(row[name])
    if row.get("previous_year_profit") is not None:
        values["previous_year_profit"] = _dec(row["previous_year_profit"])
    return ComplexityIndicators(**values)


def client_from_row(row: Row, known_staff_ids: Iterable[str] = ()) -> Client:
    """Build a Client, resolving the responsible manager reference."""
    return Client(
        id=str(row["id"]),
        name=str(_first(row, "nome", "name") or "Sem Nome"),
        tax_id=str(_first(row, "nif", "tax_id") or ""),
        email=str(row.get("email") or ""),
        phone=str(_first(row, "phone", "telefone") or ""),
        address=str(_first(row, "morada", "address") or ""),
        sector=str(_first(row, "sector", "cae_principal") or "Geral"),
        entity_type=str(_first(row, "tipo_entidade", "entity_type") or "SOCIEDADE"),
        monthly_fee=_dec(row.get("monthly_fee")),
        responsible_staff=StaffRef.parse(
            _first(row, "responsavel_interno_id", "responsavel", "responsible_staff"),
            known_staff_ids,
        ),
        employee_count=_int(row.get("employee_count")),
        document_count=_int(_first(row, "numero_documentos", "document_count")),
        establishments=_int(row.get("establishments"), default=1),
        banks=_int(row.get("banks"), default=1),
        turnover=_dec(row.get("turnover")),
        call_time_balance=_int(row.get("call_time_balance")),
        travel_count=_int(row.get("travel_count")),
        complexity=complexity_from_row(row),
        tasks=[override_from_dict(item) for item in row.get("tasks") or []],
        status=_enum(ClientStatus, _first(row, "estado", "status"), ClientStatus.ACTIVE),
        contract_renewal_date=_date(row.get("contract_renewal_date")),
        ai_analysis=analysis_from_dict(row.get("ai_analysis_cache")),
    )


def client_to_row(client: Client) -> Row:
    """Whole-record row for an upsert."""
    staff = client.responsible_staff
    row: Row = {
        "id": client.id,
        "name": client.name,
        "nome": client.name,
        "nif": client.tax_id,
        "email": client.email,
        "phone": client.phone,
        "telefone": client.phone,
        "address": client.address,
        "morada": client.address,
        "sector": client.sector,
        "entity_type": client.entity_type,
        "tipo_entidade": client.entity_type,
        "status": client.status.value,
        "estado": client.status.value,
        "responsavel_interno_id": staff.value if staff and staff.kind == StaffRef.BY_ID else None,
        "responsavel": staff.value if staff and staff.kind == StaffRef.BY_NAME else None,
        "monthly_fee": _num(client.monthly_fee),
        "employee_count": client.employee_count,
        "document_count": client.document_count,
        "numero_documentos": client.document_count,
        "establishments": client.establishments,
        "banks": client.banks,
        "turnover": _num(client.turnover),
        "call_time_balance": client.call_time_balance,
        "travel_count": client.travel_count,
        "tasks": [override_to_dict(o) for o in client.tasks],
        "contract_renewal_date": (
            client.contract_renewal_date.isoformat() if client.contract_renewal_date else None
        ),
        "ai_analysis_cache": analysis_to_dict(client.ai_analysis),
    }
    return row


# === Staff, tasks and brackets ===


def staff_from_row(row: Row) -> Staff:
    areas = tuple(
        area
        for area in (_enum(TaskArea, a, None) for a in row.get("assigned_areas") or [])
        if area is not None
    )
    return Staff(
        id=str(row["id"]),
        name=str(_first(row, "nome", "name") or "Sem Nome"),
        role=str(row.get("role") or "Colaborador"),
        email=str(row.get("email") or ""),
        phone=str(_first(row, "phone", "telefone") or ""),
        base_salary=_dec(row.get("base_salary")),
        social_charges_percent=_dec(row.get("social_charges_percent"), "23.75"),
        meal_allowance=_dec(row.get("meal_allowance")),
        other_monthly_costs=_dec(row.get("other_monthly_costs")),
        capacity_hours_per_month=_dec(row.get("capacity_hours_per_month"), "160"),
        hourly_cost=_dec(row.get("hourly_cost")),
        assigned_areas=areas,
    )


def staff_to_row(staff: Staff) -> Row:
    return {
        "id": staff.id,
        "name": staff.name,
        "email": staff.email,
        "phone": staff.phone,
        "role": staff.role,
        "base_salary": _num(staff.base_salary),
        "social_charges_percent": _num(staff.social_charges_percent),
        "meal_allowance": _num(staff.meal_allowance),
        "other_monthly_costs": _num(staff.other_monthly_costs),
        "capacity_hours_per_month": _num(staff.capacity_hours_per_month),
        "hourly_cost": _num(staff.hourly_cost),
        "assigned_areas": [area.value for area in staff.assigned_areas],
    }


def task_from_row(row: Row) -> Task:
    logic = row.get("multiplier_logic")
    return Task(
        id=str(row["id"]),
        name=str(row["name"]),
        area=TaskArea(row["area"]),
        type=TaskType(row["type"]),
        default_time_minutes=_dec(row.get("default_time_minutes")),
        default_frequency_per_year=_dec(row.get("default_frequency_per_year"), "1"),
        multiplier_logic=_enum(MultiplierLogic, logic, None) if logic else None,
    )


def task_to_row(task: Task) -> Row:
    return {
        "id": task.id,
        "name": task.name,
        "area": task.area.value,
        "type": task.type.value,
        "default_time_minutes": int(task.default_time_minutes),
        "default_frequency_per_year": int(task.default_frequency_per_year),
        "multiplier_logic": task.multiplier_logic.value if task.multiplier_logic else None,
    }


def bracket_from_row(row: Row) -> TurnoverBracket:
    return TurnoverBracket(
        id=str(row["id"]),
        min_turnover=_dec(row.get("min_turnover")),
        max_turnover=_dec(row.get("max_turnover")),
        min_percent=_dec(row.get("min_percent")),
        max_percent=_dec(row.get("max_percent")),
    )


def bracket_to_row(bracket: TurnoverBracket) -> Row:
    return {
        "id": bracket.id,
        "min_turnover": _num(bracket.min_turnover),
        "max_turnover": _num(bracket.max_turnover),
        "min_percent": _num(bracket.min_percent),
        "max_percent": _num(bracket.max_percent),
    }


def fee_group_from_row(row: Row) -> FeeGroup:
    return FeeGroup(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        description=str(row.get("description") or ""),
        client_ids=tuple(str(c) for c in row.get("client_ids") or []),
    )


# === Cash desk ===


def payment_from_row(row: Row) -> CashPayment:
    return CashPayment(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        payment_year=_int(row.get("payment_year")),
        payment_month=_int(row.get("payment_month")),
        amount_paid=_dec(row.get("amount_paid")),
        payment_method=_enum(PaymentMethod, row.get("payment_method"), PaymentMethod.CASH),
        paid_at=_datetime(row.get("paid_at")) or datetime.fromtimestamp(0).astimezone(),
        cash_operation_id=row.get("cash_operation_id"),
    )


def payment_to_row(payment: CashPayment) -> Row:
    return {
        "id": payment.id,
        "client_id": payment.client_id,
        "payment_year": payment.payment_year,
        "payment_month": payment.payment_month,
        "amount_paid": _num(payment.amount_paid),
        "payment_method": payment.payment_method.value,
        "paid_at": payment.paid_at.isoformat(),
        "cash_operation_id": payment.cash_operation_id,
    }


def agreement_from_row(row: Row) -> CashAgreement:
    monthly = _dec(row.get("monthly_amount"))
    paid_until = _int(row.get("paid_until_month"), default=1)
    debt = row.get("debt_amount")
    return CashAgreement(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        agreement_year=_int(row.get("agreement_year")),
        paid_until_month=paid_until,
        monthly_amount=monthly,
        debt_amount=_dec(debt) if debt is not None else monthly * paid_until,
        status=_enum(AgreementStatus, row.get("status"), AgreementStatus.ACTIVE),
        notes=str(row.get("notes") or ""),
        called=bool(row.get("called")),
        letter_sent=bool(row.get("letter_sent")),
        created_at=_datetime(row.get("created_at")),
        updated_at=_datetime(row.get("updated_at")),
    )


def agreement_to_row(agreement: CashAgreement) -> Row:
    # Completion is derived on read, so a completed plan is stored as active.
    status = agreement.status
    if status is AgreementStatus.COMPLETED:
        status = AgreementStatus.ACTIVE
    return {
        "id": agreement.id,
        "client_id": agreement.client_id,
        "agreement_year": agreement.agreement_year,
        "paid_until_month": agreement.paid_until_month,
        "monthly_amount": _num(agreement.monthly_amount),
        "debt_amount": _num(agreement.debt_amount),
        "status": status.value,
        "notes": agreement.notes,
        "called": agreement.called,
        "letter_sent": agreement.letter_sent,
    }


def report_line_from_dict(item: Row) -> ReportLine:
    return ReportLine(
        client_id=str(_first(item, "clientId", "client_id") or ""),
        client_name=str(_first(item, "clientName", "client_name") or ""),
        method=_enum(PaymentMethod, item.get("method"), PaymentMethod.CASH),
        months=tuple(str(m) for m in item.get("months") or []),
        total=_dec(item.get("total")),
    )


def report_line_to_dict(line: ReportLine) -> Row:
    return {
        "clientId": line.client_id,
        "clientName": line.client_name,
        "method": line.method.value,
        "months": list(line.months),
        "total": _num(line.total),
    }


def operation_from_row(row: Row) -> CashOperation:
    return CashOperation(
        id=str(row["id"]),
        created_at=_datetime(row.get("created_at")) or datetime.fromtimestamp(0).astimezone(),
        deposited_amount=_dec(row.get("deposited_amount")),
        spent_amount=_dec(row.get("spent_amount")),
        mbway_deposited_amount=_dec(row.get("mbway_deposited_amount")),
        adjustment_amount=_dec(row.get("adjustment_amount")),
        spent_description=str(row.get("spent_description") or ""),
        report_details=tuple(
            report_line_from_dict(item) for item in row.get("report_details") or []
        ),
    )


# === Insurance ===


def policy_from_row(row: Row) -> InsurancePolicy:
    net = row.get("net_premium_value")
    return InsurancePolicy(
        id=str(row["id"]),
        policy_date=_date(row.get("policy_date")) or date.today(),
        premium_value=_dec(row.get("premium_value")),
        commission_rate=_dec(row.get("commission_rate")),
        commission_paid=bool(row.get("commission_paid")),
        status=_enum(PolicyStatus, row.get("status"), PolicyStatus.PROPOSAL),
        client_id=row.get("client_id"),
        net_premium_value=_dec(net) if net not in (None, "", 0) else None,
        policy_type=str(row.get("policy_type") or ""),
        insurance_provider=str(_first(row, "insurance_provider", "company") or ""),
    )


def policy_to_row(policy: InsurancePolicy) -> Row:
    return {
        "id": policy.id,
        "policy_date": policy.policy_date.isoformat(),
        "premium_value": _num(policy.premium_value),
        "net_premium_value": _num(policy.net_premium),
        "commission_rate": _num(policy.commission_rate),
        "commission_paid": policy.commission_paid,
        "status": policy.status.value,
        "client_id": policy.client_id,
        "policy_type": policy.policy_type,
        "insurance_provider": policy.insurance_provider,
    }
