"""Dashboard alerts derived from client profitability and contract dates."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from practice_desk.analytics.fair_value import FairValueStatus
from practice_desk.analytics.profitability import calculate_client_profitability
from practice_desk.models import Client, Staff, Task, TaskArea, TurnoverBracket

LOW_MARGIN_ALERT = Decimal("15")
RENEWAL_WINDOW_DAYS = 60
EXPIRED_WINDOW_DAYS = 30
HIGH_DOCUMENT_VOLUME = 50
HIGH_VOLUME_FEE_FLOOR = Decimal("300")
VAT_DEADLINE_DAY = 20
SOCIAL_SECURITY_DEADLINE_DAY = 23


class AlertLevel(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Alert:
    id: str
    level: AlertLevel
    title: str
    message: str
    date: date
    client_id: str | None = None
    action_label: str | None = None


def _profitability_alerts(
    client: Client,
    tasks: Sequence[Task],
    area_costs: Mapping[TaskArea, Decimal],
    roster: Sequence[Staff],
    brackets: Sequence[TurnoverBracket],
    today: date,
) -> list[Alert]:
    result = calculate_client_profitability(client, tasks, area_costs, roster, brackets)
    alerts: list[Alert] = []
    if result.profitability < LOW_MARGIN_ALERT:
        alerts.append(
            Alert(
                id=f"prof-{client.id}",
                level=AlertLevel.CRITICAL,
                title="Critical profitability",
                message=f"{client.name} has a margin of {result.profitability:.1f}%.",
                date=today,
                client_id=client.id,
                action_label="View details",
            )
        )

    analysis = result.turnover_analysis
    if analysis is not None and analysis.status is FairValueStatus.UNDERPRICED:
        alerts.append(
            Alert(
                id=f"fair-{client.id}",
                level=AlertLevel.WARNING,
                title="Fee out of line",
                message=(
                    f"{client.name} pays {client.monthly_fee}€ but its turnover suggests "
                    f"at least {analysis.min_recommended_fee:.0f}€."
                ),
                date=today,
                client_id=client.id,
                action_label="View analysis",
            )
        )
    return alerts


def _renewal_alert(client: Client, today: date) -> Alert | None:
    if client.contract_renewal_date is None:
        return None
    days = (client.contract_renewal_date - today).days
    if 0 < days <= RENEWAL_WINDOW_DAYS:
        return Alert(
            id=f"renew-{client.id}",
            level=AlertLevel.INFO,
            title="Fee renewal",
            message=(
                f"The contract of {client.name} renews in {days} days "
                f"({client.contract_renewal_date.isoformat()})."
            ),
            date=today,
            client_id=client.id,
            action_label="Prepare proposal",
        )
    if -EXPIRED_WINDOW_DAYS < days <= 0:
        return Alert(
            id=f"expired-{client.id}",
            level=AlertLevel.WARNING,
            title="Contract expired",
            message=(
                f"The contract of {client.name} expired on "
                f"{client.contract_renewal_date.isoformat()}."
            ),
            date=today,
            client_id=client.id,
        )
    return None


def _deadline_alerts(today: date) -> list[Alert]:
    alerts: list[Alert] = []
    if today.day < VAT_DEADLINE_DAY:
        alerts.append(
            Alert(
                id="deadline-vat",
                level=AlertLevel.WARNING,
                title="VAT deadline approaching",
                message="Periodic VAT returns and payment are due by the 20th.",
                date=today,
            )
        )
    if today.day < SOCIAL_SECURITY_DEADLINE_DAY:
        alerts.append(
            Alert(
                id="deadline-ss",
                level=AlertLevel.INFO,
                title="Social security",
                message="Social security contributions are due by the 20th/23rd.",
                date=today,
            )
        )
    return alerts


def generate_alerts(
    clients: Sequence[Client],
    tasks: Sequence[Task],
    area_costs: Mapping[TaskArea, Decimal],
    roster: Sequence[Staff],
    brackets: Sequence[TurnoverBracket],
    today: date | None = None,
) -> list[Alert]:
    """Build the alert list shown on the dashboard."""
    today = today or date.today()
    alerts: list[Alert] = []

    for client in clients:
        alerts.extend(_profitability_alerts(client, tasks, area_costs, roster, brackets, today))

    for client in clients:
        renewal = _renewal_alert(client, today)
        if renewal is not None:
            alerts.append(renewal)

    alerts.extend(_deadline_alerts(today))

    for client in clients:
        if (
            client.document_count > HIGH_DOCUMENT_VOLUME
            and client.monthly_fee < HIGH_VOLUME_FEE_FLOOR
        ):
            alerts.append(
                Alert(
                    id=f"vol-{client.id}",
                    level=AlertLevel.WARNING,
                    title="Volume vs fee",
                    message=(
                        f"{client.name} has a high volume ({client.document_count} documents) "
                        f"but a fee below {HIGH_VOLUME_FEE_FLOOR}€."
                    ),
                    date=today,
                    client_id=client.id,
                )
            )

    return alerts
