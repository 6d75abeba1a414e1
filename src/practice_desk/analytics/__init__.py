"""Profitability and cost-allocation engine."""

from practice_desk.analytics.alerts import Alert, AlertLevel, generate_alerts
from practice_desk.analytics.commissions import (
    CommissionSummary,
    quarterly_premiums,
    summarize_commissions,
)
from practice_desk.analytics.fair_value import (
    FairValueStatus,
    TurnoverAnalysis,
    analyze_turnover,
    match_bracket,
)
from practice_desk.analytics.profitability import (
    ProfitabilityResult,
    SuggestionTier,
    calculate_client_profitability,
)
from practice_desk.analytics.quotes import (
    ProspectProfile,
    QuoteItem,
    QuoteResult,
    calculate_quote,
    preselect_items,
)
from practice_desk.analytics.rates import resolve_hourly_rate, resolve_staff
from practice_desk.analytics.staff import (
    StaffStats,
    calculate_staff_stats,
    calculate_team_stats,
    derive_hourly_cost,
    with_derived_hourly_cost,
)

__all__ = [
    # Profitability
    "ProfitabilityResult",
    "SuggestionTier",
    "calculate_client_profitability",
    "resolve_hourly_rate",
    "resolve_staff",
    # Fair value
    "FairValueStatus",
    "TurnoverAnalysis",
    "analyze_turnover",
    "match_bracket",
    # Staff
    "StaffStats",
    "calculate_staff_stats",
    "calculate_team_stats",
    "derive_hourly_cost",
    "with_derived_hourly_cost",
    # Quotes
    "ProspectProfile",
    "QuoteItem",
    "QuoteResult",
    "calculate_quote",
    "preselect_items",
    # Alerts and commissions
    "Alert",
    "AlertLevel",
    "generate_alerts",
    "CommissionSummary",
    "summarize_commissions",
    "quarterly_premiums",
]
