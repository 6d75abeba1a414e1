"""Fair-value lookup of a monthly fee against turnover brackets."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from practice_desk.models import TurnoverBracket


class FairValueStatus(str, Enum):
    UNDERPRICED = "underpriced"
    ADJUSTED = "adjusted"
    ABOVE_AVERAGE = "above_average"


@dataclass(frozen=True)
class TurnoverAnalysis:
    """Recommended monthly fee range for a turnover and how the fee compares."""

    min_recommended_fee: Decimal
    max_recommended_fee: Decimal
    status: FairValueStatus
    bracket_percent_used: Decimal
    bracket_id: str


def match_bracket(
    brackets: Sequence[TurnoverBracket], turnover: Decimal
) -> TurnoverBracket | None:
    """Return the first bracket, in sequence order, containing ``turnover``.

    Overlapping or gapped tables are tolerated: the earliest match wins and
    an uncovered turnover yields None.
    """
    for bracket in brackets:
        if bracket.contains(turnover):
            return bracket
    return None


def recommended_fee_range(
    bracket: TurnoverBracket, turnover: Decimal
) -> tuple[Decimal, Decimal]:
    """Monthly fee range implied by a bracket's annual percentages."""
    minimum = turnover * bracket.min_percent / Decimal("100") / Decimal("12")
    maximum = turnover * bracket.max_percent / Decimal("100") / Decimal("12")
    return minimum, maximum


def analyze_turnover(
    turnover: Decimal,
    monthly_fee: Decimal,
    brackets: Sequence[TurnoverBracket],
) -> TurnoverAnalysis | None:
    """Classify ``monthly_fee`` against the bracket covering ``turnover``.

    Returns None when no bracket applies; callers treat that as "no
    recommendation available".
    """
    bracket = match_bracket(brackets, turnover)
    if bracket is None:
        return None

    minimum, maximum = recommended_fee_range(bracket, turnover)
    if monthly_fee < minimum:
        status = FairValueStatus.UNDERPRICED
    elif monthly_fee > maximum:
        status = FairValueStatus.ABOVE_AVERAGE
    else:
        status = FairValueStatus.ADJUSTED

    return TurnoverAnalysis(
        min_recommended_fee=minimum,
        max_recommended_fee=maximum,
        status=status,
        bracket_percent_used=bracket.min_percent,
        bracket_id=bracket.id,
    )
