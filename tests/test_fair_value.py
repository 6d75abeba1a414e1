"""Tests for turnover-based fair value."""

from decimal import Decimal

from practice_desk.analytics.fair_value import FairValueStatus, analyze_turnover, match_bracket
from practice_desk.models import TurnoverBracket

CENT = Decimal("0.01")


def _bracket(bracket_id, low, high, min_pct, max_pct):
    return TurnoverBracket(
        id=bracket_id,
        min_turnover=Decimal(low),
        max_turnover=Decimal(high),
        min_percent=Decimal(min_pct),
        max_percent=Decimal(max_pct),
    )


class TestAnalyzeTurnover:
    """Tests for fee classification."""

    def test_underpriced_client(self):
        """Test the 50k turnover example priced at 30 per month."""
        brackets = [_bracket("b1", "0", "100000", "1", "2")]

        analysis = analyze_turnover(Decimal("50000"), Decimal("30"), brackets)

        assert analysis is not None
        assert analysis.min_recommended_fee.quantize(CENT) == Decimal("41.67")
        assert analysis.max_recommended_fee.quantize(CENT) == Decimal("83.33")
        assert analysis.status is FairValueStatus.UNDERPRICED
        assert analysis.bracket_percent_used == Decimal("1")

    def test_adjusted_and_above_average(self):
        """Test fees inside and above the range."""
        brackets = [_bracket("b1", "0", "100000", "1", "2")]

        assert analyze_turnover(Decimal("60000"), Decimal("60"), brackets).status is (
            FairValueStatus.ADJUSTED
        )
        assert analyze_turnover(Decimal("60000"), Decimal("101"), brackets).status is (
            FairValueStatus.ABOVE_AVERAGE
        )

    def test_no_bracket_no_recommendation(self):
        """Test that an uncovered turnover yields no analysis."""
        brackets = [_bracket("b1", "1000", "2000", "1", "2")]

        assert analyze_turnover(Decimal("5000"), Decimal("30"), brackets) is None
        assert analyze_turnover(Decimal("5000"), Decimal("30"), []) is None


class TestMatchBracket:
    """Tests for bracket selection order."""

    def test_first_match_wins_on_overlap(self):
        """Test that the earliest containing bracket is chosen, not the narrowest."""
        wide = _bracket("wide", "0", "1000000", "1", "2")
        narrow = _bracket("narrow", "40000", "60000", "3", "4")

        assert match_bracket([wide, narrow], Decimal("50000")).id == "wide"
        assert match_bracket([narrow, wide], Decimal("50000")).id == "narrow"

    def test_bounds_are_inclusive(self):
        """Test that both bracket limits belong to the bracket."""
        bracket = _bracket("b", "100", "200", "1", "1")

        assert match_bracket([bracket], Decimal("100")) is bracket
        assert match_bracket([bracket], Decimal("200")) is bracket
        assert match_bracket([bracket], Decimal("200.01")) is None

    def test_default_catalog_brackets(self, catalog_brackets):
        """Test a lookup against the bundled bracket table."""
        assert match_bracket(catalog_brackets, Decimal("75000")).id == "tb3"
