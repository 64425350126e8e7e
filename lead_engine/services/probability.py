"""
lead_engine/services/probability.py — Deal close-probability estimator.

probability = 0.6 · (score / 100) + 0.4 · historical conversion rate,
then multiplicative boosts for strong lead signals, each one re-capped at the
0.95 ceiling. Expected time-to-close shrinks as probability rises.

Deterministic for identical inputs. Historical data is an input here; fetching
it (and degrading to defaults on failure) happens in load_history().

deal_probability() is the explainable variant shown on the pipeline board:
stage base plus bonuses minus penalties, with a confidence rating.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from lead_engine.models import (
    DEFAULT_HISTORY,
    HistoricalOutcomes,
    LeadRecord,
    LeadStage,
    LeadWorkflow,
)
from lead_engine.services.qualification import (
    is_high_interest,
    mid_interest_threshold,
    top_interest_threshold,
)
from lead_engine.services.workflow import days_in_current_stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EstimatorConfig:
    score_weight: float = 0.6
    history_weight: float = 0.4
    high_interest_boost: float = 1.2
    detailed_needs_boost: float = 1.1
    detailed_needs_min_length: int = 50
    pain_points_boost: float = 1.15
    pain_points_min_count: int = 3
    ceiling: float = 0.95
    min_eta_days: int = 1


DEFAULT_ESTIMATOR = EstimatorConfig()


@dataclass(frozen=True)
class ProbabilityEstimate:
    probability: float          # 0.0 – 0.95
    eta_days: int               # >= 1
    score_multiplier: float     # 0.8 – 1.2, used for the AI-enhanced score
    history: HistoricalOutcomes


# ── Historical data ──────────────────────────────────────────────────────────

def interest_window(interest_level: int) -> tuple[int, int]:
    """Interest range treated as 'similar' when looking up past outcomes."""
    return max(0, interest_level - 1), interest_level + 1


def load_history(
    fetch: Optional[Callable[[tuple[int, int]], HistoricalOutcomes]],
    lead: LeadRecord,
) -> HistoricalOutcomes:
    """
    Fetch the historical aggregate for leads similar to this one.

    Any failure, including an empty result set, degrades to the conservative
    defaults (25% conversion, 30 days). Never raises.
    """
    if fetch is None:
        return DEFAULT_HISTORY
    try:
        history = fetch(interest_window(lead.interest_level))
    except Exception as e:
        logger.warning(
            "Historical outcome lookup failed for lead %s, using defaults: %s",
            lead.id, e,
        )
        return DEFAULT_HISTORY

    if history is None or history.similar_leads_count == 0:
        logger.debug("No similar closed leads for lead %s, using defaults.", lead.id)
        return DEFAULT_HISTORY
    return history


# ── Estimate ─────────────────────────────────────────────────────────────────

def estimate_probability(
    workflow: LeadWorkflow,
    lead: LeadRecord,
    history: HistoricalOutcomes = DEFAULT_HISTORY,
    config: EstimatorConfig = DEFAULT_ESTIMATOR,
    interest_scale: int = 5,
) -> ProbabilityEstimate:
    """
    Estimate the chance the lead closes and how long it will take.

    Args:
        workflow:       Current workflow (supplies the qualification score).
        lead:           The lead snapshot.
        history:        Aggregate of similar closed leads.
        config:         Blend weights and boost factors.
        interest_scale: Top of the interest scale (5 or 10).

    Returns:
        ProbabilityEstimate with probability in [0, 0.95] and eta_days >= 1.
    """
    score = max(0, min(100, workflow.qualification_score))
    conversion = max(0.0, min(1.0, history.conversion_rate))

    probability = (score / 100) * config.score_weight + conversion * config.history_weight

    boosts = []
    if is_high_interest(lead, interest_scale):
        boosts.append(config.high_interest_boost)
    if len((lead.specific_needs or "").strip()) > config.detailed_needs_min_length:
        boosts.append(config.detailed_needs_boost)
    if len(lead.distinct_pain_points) >= config.pain_points_min_count:
        boosts.append(config.pain_points_boost)
    for boost in boosts:
        probability = min(probability * boost, config.ceiling)

    probability = round(max(0.0, min(probability, config.ceiling)), 2)
    eta_days = max(config.min_eta_days, round(history.avg_days_to_close * (1 - probability)))

    return ProbabilityEstimate(
        probability=probability,
        eta_days=int(eta_days),
        score_multiplier=round(0.8 + probability * 0.4, 4),
        history=history,
    )


def enhanced_score(score: int, estimate: ProbabilityEstimate) -> int:
    """Rule score nudged by the close-probability estimate, clamped to [0, 100]."""
    return max(0, min(100, round(score * estimate.score_multiplier)))


# ── Deal probability breakdown ───────────────────────────────────────────────
#
# A second, explainable view of the same question for the pipeline board:
# stage sets the starting point, lead quality and engagement add points, and
# missing budget or authority take them away. Everything is in whole percent.

class DealConfidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


STAGE_BASE_PROBABILITY: dict[LeadStage, int] = {
    LeadStage.NEW: 5,
    LeadStage.CONTACTED: 15,
    LeadStage.QUALIFIED: 35,
    LeadStage.OPPORTUNITY: 65,
    LeadStage.CUSTOMER: 95,
    LeadStage.LOST: 0,
}


@dataclass(frozen=True)
class DealFactors:
    """Relationship signals the lead record does not carry."""
    previous_customer: bool = False
    referral_source: bool = False


@dataclass(frozen=True)
class DealProbabilityConfig:
    stage_base: dict[LeadStage, int] = field(default_factory=lambda: dict(STAGE_BASE_PROBABILITY))
    strong_score: int = 80
    strong_score_bonus: int = 10
    good_score: int = 60
    good_score_bonus: int = 5
    top_interest_bonus: int = 10
    mid_interest_bonus: int = 5
    full_bant_bonus: int = 5
    engagement_bonus: int = 5           # per engagement signal
    detailed_needs_min_length: int = 50
    budget_bonus: int = 5
    significant_budget_min: float = 25_000
    significant_budget_bonus: int = 5
    urgent_timeline_months: int = 3
    urgent_timeline_bonus: int = 5
    fast_progression_days: int = 7
    fast_progression_bonus: int = 5
    relationship_bonus: int = 5         # per previous-customer / referral signal
    no_budget_penalty: int = 10
    no_authority_penalty: int = 5
    stalled_contact_days: int = 14
    stalled_penalty: int = 5


DEFAULT_DEAL_CONFIG = DealProbabilityConfig()


@dataclass(frozen=True)
class DealProbability:
    base_score: int
    quality_bonus: int
    engagement_bonus: int
    business_bonus: int
    historical_bonus: int
    penalties: int
    probability: int            # 0 – 100
    confidence: DealConfidence
    insights: list[str]

    @property
    def label(self) -> str:
        return probability_label(self.probability)


def probability_label(probability: int) -> str:
    if probability >= 80:
        return "Very Likely"
    if probability >= 60:
        return "Likely"
    if probability >= 40:
        return "Possible"
    if probability >= 20:
        return "Unlikely"
    return "Very Unlikely"


def _deal_headline(probability: int) -> str:
    if probability >= 70:
        return "Hot deal - prioritize immediate action"
    if probability >= 50:
        return "Good opportunity - maintain momentum"
    if probability >= 30:
        return "Needs nurturing - focus on qualification"
    return "Cold lead - consider re-qualification"


def deal_probability(
    workflow: LeadWorkflow,
    lead: LeadRecord,
    factors: Optional[DealFactors] = None,
    config: DealProbabilityConfig = DEFAULT_DEAL_CONFIG,
    interest_scale: int = 5,
    now: Optional[datetime] = None,
) -> DealProbability:
    """
    Break the close probability down into stage base, bonuses and penalties.

    Args:
        workflow:       Workflow supplying stage, score, criteria and history.
        lead:           The lead snapshot.
        factors:        Optional relationship signals.
        config:         Point table.
        interest_scale: Top of the interest scale (5 or 10).
        now:            Reference time for the stalled-contact check.

    Returns:
        DealProbability with a 0–100 probability, a confidence rating and
        insight strings, headline first.
    """
    factors = factors or DealFactors()
    criteria = workflow.criteria
    insights: list[str] = []

    base = config.stage_base.get(workflow.current_stage, 0)

    quality = 0
    if workflow.qualification_score >= config.strong_score:
        quality += config.strong_score_bonus
        insights.append("High qualification score indicates strong fit")
    elif workflow.qualification_score >= config.good_score:
        quality += config.good_score_bonus
    if lead.interest_level >= top_interest_threshold(interest_scale):
        quality += config.top_interest_bonus
        insights.append("Very high interest level")
    elif lead.interest_level >= mid_interest_threshold(interest_scale):
        quality += config.mid_interest_bonus
    if criteria.bant_count == 4:
        quality += config.full_bant_bonus
        insights.append("All BANT criteria met")

    engagement = 0
    if lead.package_seen:
        engagement += config.engagement_bonus
        insights.append("Engaged with marketing materials")
    if lead.decision_makers and "," in lead.decision_makers:
        engagement += config.engagement_bonus
        insights.append("Multiple stakeholders involved")
    if len(lead.specific_needs or "") > config.detailed_needs_min_length:
        engagement += config.engagement_bonus
        insights.append("Clear pain points identified")

    business = 0
    if criteria.has_budget:
        business += config.budget_bonus
        if criteria.budget_range and criteria.budget_range.min >= config.significant_budget_min:
            business += config.significant_budget_bonus
            insights.append("Significant budget available")
    if (
        criteria.has_timeline
        and criteria.timeline_months
        and criteria.timeline_months <= config.urgent_timeline_months
    ):
        business += config.urgent_timeline_bonus
        insights.append("Urgent timeline increases close probability")

    historical = 0
    history = workflow.stage_history
    if len(history) >= 2:
        elapsed = history[-1].transition_date - history[0].transition_date
        if elapsed.days <= config.fast_progression_days:
            historical += config.fast_progression_bonus
            insights.append("Fast progression through sales stages")
    if factors.previous_customer:
        historical += config.relationship_bonus
        insights.append("Previous customer relationship")
    if factors.referral_source:
        historical += config.relationship_bonus
        insights.append("Referral leads have higher close rates")

    penalties = 0
    if not criteria.has_budget:
        penalties += config.no_budget_penalty
        insights.append("No budget identified (major risk)")
    if not criteria.has_authority:
        penalties += config.no_authority_penalty
        insights.append("Decision maker not identified")
    if (
        workflow.current_stage == LeadStage.CONTACTED
        and history
        and days_in_current_stage(workflow, now) > config.stalled_contact_days
    ):
        penalties += config.stalled_penalty
        insights.append("Stalled in contact stage")

    probability = max(0, min(100, base + quality + engagement + business + historical - penalties))

    if len(history) >= 3 and criteria.bant_count >= 3:
        confidence = DealConfidence.HIGH
    elif len(history) >= 2 and criteria.bant_count >= 2:
        confidence = DealConfidence.MEDIUM
    else:
        confidence = DealConfidence.LOW

    insights.insert(0, _deal_headline(probability))
    logger.debug(
        "Deal probability for lead %s: %d%% (%s confidence)",
        lead.id, probability, confidence.value,
    )
    return DealProbability(
        base_score=base,
        quality_bonus=quality,
        engagement_bonus=engagement,
        business_bonus=business,
        historical_bonus=historical,
        penalties=penalties,
        probability=probability,
        confidence=confidence,
        insights=insights,
    )
