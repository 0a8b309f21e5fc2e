"""Unit tests for standard deal criteria evaluation.

Tests cover:
- evaluate_standard_deal: fully standard deal, each violation, ordering,
  missing required fields
- annual_value: explicit value, spread over term, zero term fallback
"""

from __future__ import annotations

import pytest

from src.dealdesk.approvals.criteria import (
    StandardDealCriteria,
    annual_value,
    evaluate_standard_deal,
    get_non_standard_reasons,
    is_standard_deal,
)
from src.dealdesk.approvals.schemas import DealParameters


def _standard(**overrides) -> DealParameters:
    """Deal parameters that pass every standard check."""
    data = {
        "total_value": 2_000_000,
        "annual_value": 2_000_000,
        "contract_term_months": 12,
        "deal_type": "grow",
        "sales_channel": "client_direct",
        "yearly_revenue_growth_rate": 30,
        "forecasted_margin": 35,
        "yearly_margin_growth_rate": 0,
        "added_value_benefits_cost": 50_000,
        "analytics_tier": "silver",
        "has_trade_am_implications": False,
        "requires_custom_marketing": False,
    }
    data.update(overrides)
    return DealParameters(**data)


class TestEvaluateStandardDeal:
    """Tests for evaluate_standard_deal."""

    def test_standard_deal_has_no_violations(self) -> None:
        result = evaluate_standard_deal(_standard())
        assert result.is_standard is True
        assert result.violations == []

    def test_boundaries_are_inclusive(self) -> None:
        """Spend at $1M, growth at 25%, margin at 30% and benefits at $100K still pass."""
        params = _standard(
            annual_value=1_000_000,
            yearly_revenue_growth_rate=25,
            forecasted_margin=30,
            yearly_margin_growth_rate=-5,
            added_value_benefits_cost=100_000,
        )
        assert is_standard_deal(params) is True

    @pytest.mark.parametrize(
        ("overrides", "reason"),
        [
            ({"deal_type": "protect"}, "Deal type is not 'Grow'"),
            ({"sales_channel": "holding_company"}, "Sales channel is not Independent Agency or Client Direct"),
            ({"has_trade_am_implications": True}, "Has Trading & AM resource implications"),
            ({"annual_value": 3_500_000}, "Projected annual spend not between $1M-$3M"),
            ({"yearly_revenue_growth_rate": 24.9}, "Yearly revenue growth rate < 25%"),
            ({"forecasted_margin": 29}, "Forecasted margin < 30%"),
            ({"yearly_margin_growth_rate": -6}, "Yearly margin growth rate < -5%"),
            ({"added_value_benefits_cost": 100_001}, "Added value benefits cost > $100K"),
            ({"analytics_tier": "gold"}, "Analytics solutions tier is not Silver"),
            ({"requires_custom_marketing": True}, "Requires custom marketing/PR"),
        ],
    )
    def test_single_violation(self, overrides: dict, reason: str) -> None:
        result = evaluate_standard_deal(_standard(**overrides))
        assert result.is_standard is False
        assert result.violations == [reason]

    def test_violations_keep_display_order(self) -> None:
        params = _standard(
            deal_type="custom",
            sales_channel="holding_company",
            has_trade_am_implications=True,
            annual_value=500_000,
            yearly_revenue_growth_rate=10,
            forecasted_margin=20,
            yearly_margin_growth_rate=-10,
            added_value_benefits_cost=200_000,
            analytics_tier="gold",
            requires_custom_marketing=True,
        )
        assert get_non_standard_reasons(params) == [
            "Deal type is not 'Grow'",
            "Sales channel is not Independent Agency or Client Direct",
            "Has Trading & AM resource implications",
            "Projected annual spend not between $1M-$3M",
            "Yearly revenue growth rate < 25%",
            "Forecasted margin < 30%",
            "Yearly margin growth rate < -5%",
            "Added value benefits cost > $100K",
            "Analytics solutions tier is not Silver",
            "Requires custom marketing/PR",
        ]

    def test_deal_type_is_case_insensitive(self) -> None:
        assert is_standard_deal(_standard(deal_type="Grow")) is True

    def test_missing_growth_rate_is_non_standard(self) -> None:
        result = evaluate_standard_deal(_standard(yearly_revenue_growth_rate=None))
        assert result.is_standard is False
        assert "Yearly revenue growth rate < 25%" in result.violations

    def test_missing_deal_type_is_non_standard(self) -> None:
        result = evaluate_standard_deal(_standard(deal_type=None))
        assert result.is_standard is False
        assert result.violations[0] == "Deal type is not 'Grow'"

    def test_custom_criteria(self) -> None:
        """A stricter margin floor turns a 35% margin deal non-standard."""
        criteria = StandardDealCriteria(forecasted_margin=40)
        result = evaluate_standard_deal(_standard(), criteria)
        assert result.is_standard is False
        assert len(result.violations) == 1


class TestAnnualValue:
    """Tests for annual_value."""

    def test_explicit_annual_value(self) -> None:
        params = DealParameters(total_value=3_000_000, annual_value=1_500_000, contract_term_months=24)
        assert annual_value(params) == 1_500_000

    def test_spread_over_term(self) -> None:
        params = DealParameters(total_value=2_400_000, contract_term_months=24)
        assert annual_value(params) == pytest.approx(1_200_000)

    def test_zero_term_uses_total_value(self) -> None:
        params = DealParameters(total_value=900_000, contract_term_months=0)
        assert annual_value(params) == 900_000
