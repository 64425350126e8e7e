"""
lead_engine/services/qualification.py — Lead qualification scorer.

Turns a LeadRecord (plus optional user-supplied BANT criteria) into:
  - completed QualificationCriteria
  - a 0–100 qualification score
  - an inferred LeadStage

Every weight lives in ScoringWeights; nothing below hard-codes a point value.
Each signal is monotonic in its input and the total is clamped to [0, 100].
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from lead_engine.models import (
    STAGE_ORDER,
    LeadRecord,
    LeadStage,
    QualificationCriteria,
)

logger = logging.getLogger(__name__)


# ── Weights ──────────────────────────────────────────────────────────────────

REVENUE_BUCKETS: dict[str, int] = {
    "0-10k": 4,
    "10k-50k": 8,
    "50k-100k": 12,
    "100k-250k": 16,
    "250k+": 20,
}

EMPLOYEE_BUCKETS: dict[str, int] = {
    "1-5": 2,
    "6-20": 4,
    "21-50": 6,
    "51-100": 8,
    "100+": 10,
}


@dataclass(frozen=True)
class ScoringWeights:
    base: int = 15
    revenue_points: dict[str, int] = field(default_factory=lambda: dict(REVENUE_BUCKETS))
    revenue_cap: int = 20
    employee_points: dict[str, int] = field(default_factory=lambda: dict(EMPLOYEE_BUCKETS))
    employee_cap: int = 10
    pain_point_points: int = 5
    pain_point_cap: int = 15
    interest_max_points: int = 20
    both_channels_bonus: int = 10
    specific_needs_bonus: int = 10
    specific_needs_min_length: int = 20
    bant_points: int = 5                    # per satisfied BANT criterion
    significant_budget_min: float = 25_000
    significant_budget_bonus: int = 5


DEFAULT_WEIGHTS = ScoringWeights()

# Interest bands as a fraction of the deployment's scale (4/5, 8/10 → top).
TOP_INTEREST_FRACTION = 0.8
MID_INTEREST_FRACTION = 0.6


# ── Output types ─────────────────────────────────────────────────────────────

class LeadTemperature(str, enum.Enum):
    HOT = "hot"
    WARM = "warm"
    COOL = "cool"
    COLD = "cold"


@dataclass(frozen=True)
class ScoreFactor:
    name: str
    impact: float           # 0.0 – 1.0
    value: str


@dataclass(frozen=True)
class QualificationResult:
    criteria: QualificationCriteria
    score: int              # 0 – 100
    stage: LeadStage
    temperature: LeadTemperature
    factors: list[ScoreFactor] = field(default_factory=list)


# ── Interest bands ───────────────────────────────────────────────────────────

def top_interest_threshold(scale: int) -> int:
    return math.ceil(scale * TOP_INTEREST_FRACTION)


def mid_interest_threshold(scale: int) -> int:
    return math.ceil(scale * MID_INTEREST_FRACTION)


def is_high_interest(lead: LeadRecord, scale: int) -> bool:
    return lead.interest_level >= top_interest_threshold(scale)


# ── Criteria ─────────────────────────────────────────────────────────────────

def infer_criteria(
    lead: LeadRecord,
    supplied: Optional[QualificationCriteria] = None,
) -> QualificationCriteria:
    """
    Fill in BANT flags that the lead record itself proves.

    Inferred flags are OR-ed with the supplied ones, so a flag the user already
    set to True is never regressed. Budget is never inferred: only an explicit
    qualification can claim it.
    """
    supplied = supplied or QualificationCriteria()
    has_decision_maker = bool(lead.decision_makers and lead.decision_makers.strip())
    inferred = QualificationCriteria(
        has_need=bool(lead.specific_needs and lead.specific_needs.strip()) or bool(lead.distinct_pain_points),
        has_authority=has_decision_maker,
        has_timeline=supplied.timeline_months is not None,
        pain_points=tuple(lead.distinct_pain_points),
        decision_maker_identified=has_decision_maker,
    )
    return supplied.merged_with(inferred)


# ── Score ────────────────────────────────────────────────────────────────────

def _interest_points(lead: LeadRecord, weights: ScoringWeights, scale: int) -> int:
    level = max(0, min(lead.interest_level, scale))
    return round(weights.interest_max_points * level / scale)


def calculate_qualification_score(
    lead: LeadRecord,
    criteria: QualificationCriteria,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    interest_scale: int = 5,
) -> int:
    """
    Additive qualification score, clamped to [0, 100].

    Missing optional fields contribute zero. A budget range only counts when
    criteria.has_budget is True; otherwise it is carried but ignored here.
    """
    score = weights.base

    if lead.monthly_revenue:
        score += min(weights.revenue_points.get(lead.monthly_revenue, 0), weights.revenue_cap)
    if lead.number_of_employees:
        score += min(weights.employee_points.get(lead.number_of_employees, 0), weights.employee_cap)

    score += min(len(lead.distinct_pain_points) * weights.pain_point_points, weights.pain_point_cap)
    score += _interest_points(lead, weights, interest_scale)

    if lead.has_phone and lead.has_email:
        score += weights.both_channels_bonus

    needs = (lead.specific_needs or "").strip()
    if len(needs) > weights.specific_needs_min_length:
        score += weights.specific_needs_bonus

    score += criteria.bant_count * weights.bant_points
    if (
        criteria.has_budget
        and criteria.budget_range is not None
        and criteria.budget_range.min >= weights.significant_budget_min
    ):
        score += weights.significant_budget_bonus

    return max(0, min(100, int(score)))


def score_factors(
    lead: LeadRecord,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    interest_scale: int = 5,
) -> list[ScoreFactor]:
    """Per-signal breakdown for display next to the score."""
    factors = [
        ScoreFactor(
            name="Interest Level",
            impact=0.8 if is_high_interest(lead, interest_scale) else 0.4,
            value=f"{lead.interest_level}/{interest_scale}",
        )
    ]
    if lead.number_of_employees:
        points = weights.employee_points.get(lead.number_of_employees, 0)
        factors.append(ScoreFactor(
            name="Business Size",
            impact=round(points / max(weights.employee_cap, 1), 2),
            value=lead.number_of_employees,
        ))
    if lead.monthly_revenue:
        points = weights.revenue_points.get(lead.monthly_revenue, 0)
        factors.append(ScoreFactor(
            name="Monthly Revenue",
            impact=round(points / max(weights.revenue_cap, 1), 2),
            value=lead.monthly_revenue,
        ))
    if lead.distinct_pain_points:
        points = min(len(lead.distinct_pain_points) * weights.pain_point_points, weights.pain_point_cap)
        factors.append(ScoreFactor(
            name="Pain Points",
            impact=round(points / max(weights.pain_point_cap, 1), 2),
            value=f"{len(lead.distinct_pain_points)} identified",
        ))
    return factors


# ── Stage ────────────────────────────────────────────────────────────────────

def infer_stage(lead: LeadRecord, interest_scale: int = 5) -> LeadStage:
    """Stage the lead record alone justifies, ignoring any prior workflow."""
    if lead.signed_up:
        return LeadStage.CUSTOMER
    if lead.interest_level >= top_interest_threshold(interest_scale) and lead.package_seen:
        return LeadStage.OPPORTUNITY
    if lead.interest_level >= mid_interest_threshold(interest_scale):
        return LeadStage.QUALIFIED
    if lead.has_phone or lead.has_email:
        return LeadStage.CONTACTED
    return LeadStage.NEW


def furthest_stage(current: Optional[LeadStage], inferred: LeadStage) -> LeadStage:
    """Forward-only merge: terminal stages stick and nothing moves backwards."""
    if current is None:
        return inferred
    if current.is_terminal:
        return current
    if inferred == LeadStage.LOST:
        return current
    return max(current, inferred, key=STAGE_ORDER.index)


# ── Temperature ──────────────────────────────────────────────────────────────

def lead_temperature(score: int) -> LeadTemperature:
    if score >= 80:
        return LeadTemperature.HOT
    if score >= 60:
        return LeadTemperature.WARM
    if score >= 40:
        return LeadTemperature.COOL
    return LeadTemperature.COLD


def days_to_follow_up(score: int) -> int:
    """Same day for hot leads, up to a week for cold ones."""
    if score >= 80:
        return 0
    if score >= 60:
        return 1
    if score >= 40:
        return 3
    return 7


# ── Public entry point ───────────────────────────────────────────────────────

def qualify(
    lead: LeadRecord,
    criteria: Optional[QualificationCriteria] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    interest_scale: int = 5,
    current_stage: Optional[LeadStage] = None,
) -> QualificationResult:
    """
    Score and stage a lead.

    Args:
        lead:           The lead snapshot.
        criteria:       Optional partially-filled BANT criteria from the user.
        weights:        Scoring weight table.
        interest_scale: Top of the interest scale (5 or 10).
        current_stage:  Stage already recorded for the lead; the result never
                        moves backwards from it.

    Returns:
        QualificationResult with completed criteria, score and stage.
    """
    completed = infer_criteria(lead, criteria)
    score = calculate_qualification_score(lead, completed, weights, interest_scale)
    stage = furthest_stage(current_stage, infer_stage(lead, interest_scale))

    logger.debug(
        "Qualified lead %s: score=%d stage=%s bant=%d/4",
        lead.id, score, stage.value, completed.bant_count,
    )
    return QualificationResult(
        criteria=completed,
        score=score,
        stage=stage,
        temperature=lead_temperature(score),
        factors=score_factors(lead, weights, interest_scale),
    )
