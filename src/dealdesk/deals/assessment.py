"""Deal assessment -- narrative scores and a recommendation for a deal.

DealAssessor is the capability: ``await assessor.assess(deal, tiers)``
returns a DealAssessment or raises DealAssessmentError. Implementations:

- LLMDealAssessor: asks the LLM (via LiteLLM) for a JSON assessment
- HeuristicDealAssessor: deterministic scores from tier financials
- StaticDealAssessor: neutral scores, used when nothing better is available
- FallbackDealAssessor: tries a primary assessor, falls back on error

build_deal_assessor() picks the combination from settings.DEAL_ASSESSOR.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

from src.dealdesk.config import AssessorMode, Settings
from src.dealdesk.deals.financials import calculate_tier_summary, previous_year_baseline
from src.dealdesk.deals.schemas import DealRead, DealTierRead
from src.dealdesk.services.llm import LLMService, sanitize_text

logger = structlog.get_logger(__name__)


# ── Assessment Types ────────────────────────────────────────────────────────


class Recommendation(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


class DimensionScore(BaseModel):
    score: int = Field(ge=1, le=10)
    analysis: str
    recommendation: Recommendation


class DealAssessment(BaseModel):
    revenue_growth: DimensionScore
    margin_improvement: DimensionScore
    profitability_impact: DimensionScore
    overall_value: DimensionScore
    summary: str
    source: str = "llm"


class DealAssessmentError(Exception):
    """Raised when an assessor cannot produce an assessment."""


class DealAssessor(Protocol):
    async def assess(
        self, deal: DealRead, tiers: Sequence[DealTierRead]
    ) -> DealAssessment: ...


def recommendation_for(score: int) -> Recommendation:
    if score >= 7:
        return Recommendation.APPROVE
    if score >= 4:
        return Recommendation.REVIEW
    return Recommendation.REJECT


# ── Static ──────────────────────────────────────────────────────────────────

UNAVAILABLE_SUMMARY = "Analysis unavailable. Please review the deal manually."


class StaticDealAssessor:
    """Neutral assessment: every dimension 5/10, recommendation "review"."""

    async def assess(
        self, deal: DealRead, tiers: Sequence[DealTierRead]
    ) -> DealAssessment:
        neutral = DimensionScore(
            score=5,
            analysis="Automated analysis unavailable.",
            recommendation=Recommendation.REVIEW,
        )
        return DealAssessment(
            revenue_growth=neutral,
            margin_improvement=neutral,
            profitability_impact=neutral,
            overall_value=neutral,
            summary=UNAVAILABLE_SUMMARY,
            source="static",
        )


# ── Heuristic ───────────────────────────────────────────────────────────────


def _scale(value: float, low: float, high: float) -> int:
    """Map value linearly onto 1..10, clamping outside [low, high]."""
    if value <= low:
        return 1
    if value >= high:
        return 10
    return 1 + round((value - low) / (high - low) * 9)


class HeuristicDealAssessor:
    """Deterministic assessment derived from tier financials.

    Growth figures come from the tiers when present, otherwise from the
    growth rates entered on the deal.
    """

    async def assess(
        self, deal: DealRead, tiers: Sequence[DealTierRead]
    ) -> DealAssessment:
        if tiers:
            summary = calculate_tier_summary(tiers, previous_year_baseline(deal))
            revenue_growth = summary.revenue_growth_rate
            margin_change = summary.gross_margin_change
            profit_growth = summary.profit_growth_rate
        else:
            revenue_growth = (deal.yearly_revenue_growth_rate or 0) / 100
            margin_change = (deal.yearly_margin_growth_rate or 0) / 100
            profit_growth = revenue_growth + margin_change

        revenue_score = _scale(revenue_growth, -0.2, 0.5)
        margin_score = _scale(margin_change, -0.1, 0.1)
        profit_score = _scale(profit_growth, -0.3, 0.5)
        overall_score = round((revenue_score + margin_score + profit_score) / 3)

        def dimension(score: int, label: str, value: float) -> DimensionScore:
            return DimensionScore(
                score=score,
                analysis=f"{label} of {value:+.1%} versus the previous year.",
                recommendation=recommendation_for(score),
            )

        overall = DimensionScore(
            score=overall_score,
            analysis="Average of revenue, margin and profitability scores.",
            recommendation=recommendation_for(overall_score),
        )
        return DealAssessment(
            revenue_growth=dimension(revenue_score, "Revenue growth", revenue_growth),
            margin_improvement=dimension(margin_score, "Gross margin change", margin_change),
            profitability_impact=dimension(profit_score, "Adjusted profit growth", profit_growth),
            overall_value=overall,
            summary=(
                f"{deal.deal_name}: overall score {overall_score}/10, "
                f"recommendation {overall.recommendation.value}."
            ),
            source="heuristic",
        )


# ── LLM ─────────────────────────────────────────────────────────────────────

_SYSTEM_PROMPT = """You are a commercial finance analyst reviewing sales deals.
Assess the deal on four dimensions: revenue_growth, margin_improvement,
profitability_impact and overall_value. For each give an integer score from 1
to 10, a short analysis, and a recommendation of "approve", "review" or
"reject". Add a one-paragraph summary.

Respond with a single JSON object of the form:
{"revenue_growth": {"score": 7, "analysis": "...", "recommendation": "approve"},
 "margin_improvement": {...}, "profitability_impact": {...},
 "overall_value": {...}, "summary": "..."}"""


def build_assessment_prompt(deal: DealRead, tiers: Sequence[DealTierRead]) -> str:
    """Render the deal and its tiers as the user message for the LLM."""
    lines = [
        f"Deal: {sanitize_text(deal.deal_name)} ({deal.reference_number})",
        f"Type: {deal.deal_type.value}, channel: {deal.sales_channel.value}",
        f"Contract term: {deal.contract_term_months or 'n/a'} months",
        f"Previous year revenue: {deal.previous_year_revenue:,.0f}, "
        f"margin: {deal.previous_year_margin:.1%}",
    ]
    if deal.business_summary:
        lines.append(f"Business summary: {sanitize_text(deal.business_summary)}")
    if tiers:
        summary = calculate_tier_summary(tiers)
        lines.append(
            f"Tier totals: revenue {summary.total_revenue:,.0f}, "
            f"weighted margin {summary.weighted_gross_margin:.1%}, "
            f"incentives {summary.incentive_cost:,.0f}, "
            f"adjusted gross profit {summary.adjusted_gross_profit:,.0f}"
        )
        for tier in sorted(tiers, key=lambda t: t.tier_number):
            lines.append(
                f"Tier {tier.tier_number}: revenue {tier.annual_revenue:,.0f}, "
                f"margin {tier.annual_gross_margin:.1%}, incentive "
                f"{tier.category_name}/{tier.incentive_option} {tier.incentive_value:,.0f}"
            )
    return "\n".join(lines)


class LLMDealAssessor:
    """Assessment from the LLM service, validated against DealAssessment."""

    def __init__(self, llm_service: LLMService) -> None:
        self._llm = llm_service

    async def assess(
        self, deal: DealRead, tiers: Sequence[DealTierRead]
    ) -> DealAssessment:
        messages = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_assessment_prompt(deal, tiers)},
        ]
        try:
            response = await self._llm.completion(
                messages,
                json_mode=True,
                metadata={"deal_id": deal.id, "purpose": "deal_assessment"},
            )
        except Exception as exc:
            raise DealAssessmentError(f"LLM call failed: {exc}") from exc

        try:
            payload = json.loads(response["content"] or "")
            return DealAssessment.model_validate({**payload, "source": "llm"})
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            raise DealAssessmentError(f"Malformed assessment response: {exc}") from exc


# ── Composition ─────────────────────────────────────────────────────────────


class FallbackDealAssessor:
    """Use primary; when it raises DealAssessmentError, use fallback."""

    def __init__(self, primary: DealAssessor, fallback: DealAssessor) -> None:
        self._primary = primary
        self._fallback = fallback

    async def assess(
        self, deal: DealRead, tiers: Sequence[DealTierRead]
    ) -> DealAssessment:
        try:
            return await self._primary.assess(deal, tiers)
        except DealAssessmentError as exc:
            logger.warning("assessment.primary_failed", deal_id=deal.id, error=str(exc))
            return await self._fallback.assess(deal, tiers)


def build_deal_assessor(
    settings: Settings, llm_service: LLMService | None = None
) -> DealAssessor:
    """Select the assessor configured by DEAL_ASSESSOR."""
    if settings.DEAL_ASSESSOR == AssessorMode.llm:
        llm = llm_service or LLMService(settings)
        return FallbackDealAssessor(LLMDealAssessor(llm), StaticDealAssessor())
    return HeuristicDealAssessor()
