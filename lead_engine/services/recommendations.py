"""
lead_engine/services/recommendations.py — Rule-based follow-ups and the AI/rule merger.

  rule_recommendations(workflow, lead)  → stage, interest, package and
                                          stakeholder rules, priority-sorted
  merge_recommendations(rule, ai)       → top 3 AI + top 4 rule, near-duplicates
                                          dropped, stable priority sort
  fallback_insights(workflow, lead)     → strategic insights without the AI
"""

import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from lead_engine.models import (
    FollowUpRecommendation,
    LeadRecord,
    LeadStage,
    LeadWorkflow,
    Priority,
    RecommendationType,
)
from lead_engine.services.probability import ProbabilityEstimate
from lead_engine.services.qualification import is_high_interest
from lead_engine.services.workflow import days_in_current_stage

logger = logging.getLogger(__name__)

AI_LIMIT = 3
RULE_LIMIT = 4
SIMILARITY_THRESHOLD = 0.5

CONTACTED_STALE_DAYS = 3
OPPORTUNITY_STALE_DAYS = 7
EXECUTIVE_BUDGET_MIN = 25_000
LOW_INTEREST_FRACTION = 0.4


# ── Rule-based recommendations ───────────────────────────────────────────────

def _rec(
    rec_id: str,
    rec_type: RecommendationType,
    priority: Priority,
    action: str,
    reason: str,
    timing: str,
    template: Optional[str] = None,
) -> FollowUpRecommendation:
    return FollowUpRecommendation(
        id=rec_id,
        type=rec_type,
        priority=priority,
        action=action,
        reason=reason,
        suggested_timing=timing,
        template=template,
    )


def _introduction_template(lead: LeadRecord) -> str:
    return (
        f"Hi {lead.owner_name},\n\n"
        "I noticed you expressed interest in our solution. I'd love to learn more about "
        "your business needs and show you how we can help.\n\n"
        "Do you have 15 minutes this week for a quick call?"
    )


def _stage_rules(workflow: LeadWorkflow, lead: LeadRecord, days_in_stage: int) -> list[FollowUpRecommendation]:
    stage = workflow.current_stage
    criteria = workflow.criteria
    recs: list[FollowUpRecommendation] = []

    if stage == LeadStage.NEW:
        recs.append(_rec(
            "initial-contact", RecommendationType.EMAIL, Priority.HIGH,
            "Send introductory email", "First contact establishes relationship",
            "Within 24 hours", template=_introduction_template(lead),
        ))

    elif stage == LeadStage.CONTACTED:
        if days_in_stage > CONTACTED_STALE_DAYS:
            recs.append(_rec(
                "follow-up-call", RecommendationType.CALL, Priority.URGENT,
                "Schedule discovery call",
                f"Lead has been contacted but not qualified for {CONTACTED_STALE_DAYS}+ days",
                "Today",
            ))
        if not criteria.has_budget:
            recs.append(_rec(
                "budget-discussion", RecommendationType.MEETING, Priority.HIGH,
                "Discuss budget requirements", "Budget not yet identified", "Next meeting",
            ))
        if not criteria.has_authority:
            recs.append(_rec(
                "identify-dm", RecommendationType.TASK, Priority.HIGH,
                "Identify decision makers", "Decision maker not yet identified", "Before next call",
            ))

    elif stage == LeadStage.QUALIFIED:
        recs.append(_rec(
            "demo-schedule", RecommendationType.MEETING, Priority.HIGH,
            "Schedule product demonstration",
            "Qualified leads should see the product quickly", "Within 48 hours",
        ))
        if lead.specific_needs and lead.specific_needs.strip():
            recs.append(_rec(
                "custom-proposal", RecommendationType.TASK, Priority.MEDIUM,
                "Prepare customized proposal",
                "Lead has specific needs that require tailored solution", "Before demo",
            ))

    elif stage == LeadStage.OPPORTUNITY:
        if days_in_stage > OPPORTUNITY_STALE_DAYS:
            recs.append(_rec(
                "close-urgency", RecommendationType.CALL, Priority.URGENT,
                "Address any remaining concerns",
                f"Opportunity has been open for {OPPORTUNITY_STALE_DAYS}+ days", "Today",
            ))
        recs.append(_rec(
            "roi-analysis", RecommendationType.CONTENT, Priority.HIGH,
            "Share ROI analysis or case study", "Build confidence in solution value", "This week",
        ))
        if criteria.has_budget and criteria.budget_range and criteria.budget_range.min >= EXECUTIVE_BUDGET_MIN:
            recs.append(_rec(
                "executive-involvement", RecommendationType.MEETING, Priority.MEDIUM,
                "Involve executive sponsor",
                "High-value deal benefits from executive alignment", "Final negotiation",
            ))

    elif stage == LeadStage.CUSTOMER:
        recs.append(_rec(
            "onboarding", RecommendationType.TASK, Priority.URGENT,
            "Begin onboarding process", "Quick onboarding improves customer satisfaction", "Immediately",
        ))
        recs.append(_rec(
            "success-checkin", RecommendationType.MEETING, Priority.MEDIUM,
            "Schedule 30-day success check-in", "Early engagement prevents churn", "30 days post-sale",
        ))

    elif stage == LeadStage.LOST:
        recs.append(_rec(
            "loss-analysis", RecommendationType.TASK, Priority.MEDIUM,
            "Conduct loss analysis", "Learn from lost opportunities", "This week",
        ))
        recs.append(_rec(
            "nurture-campaign", RecommendationType.EMAIL, Priority.LOW,
            "Add to nurture campaign", "Keep relationship warm for future opportunities", "Quarterly",
        ))

    return recs


def rule_recommendations(
    workflow: LeadWorkflow,
    lead: LeadRecord,
    interest_scale: int = 5,
    now: Optional[datetime] = None,
) -> list[FollowUpRecommendation]:
    """
    Deterministic follow-ups for the lead's current state.

    Returned highest priority first; equal priorities keep rule order.
    """
    stage = workflow.current_stage
    recs = _stage_rules(workflow, lead, days_in_current_stage(workflow, now))

    if is_high_interest(lead, interest_scale) and not stage.is_terminal:
        recs.append(_rec(
            "high-interest-fast-track", RecommendationType.CALL, Priority.HIGH,
            "Fast-track high-interest lead",
            f"Interest level {lead.interest_level}/{interest_scale} indicates strong buying intent",
            "Within 24 hours",
        ))

    if not lead.package_seen and stage in (LeadStage.QUALIFIED, LeadStage.OPPORTUNITY):
        recs.append(_rec(
            "share-materials", RecommendationType.EMAIL, Priority.MEDIUM,
            "Share marketing materials", "Qualified lead hasn't seen our package yet", "Today",
        ))

    if lead.decision_makers and "," in lead.decision_makers and not stage.is_terminal:
        recs.append(_rec(
            "stakeholder-meeting", RecommendationType.MEETING, Priority.MEDIUM,
            "Organize stakeholder alignment meeting",
            "Multiple decision makers need to be aligned", "Before closing",
        ))

    return sort_by_priority(recs)


def sort_by_priority(recs: Iterable[FollowUpRecommendation]) -> list[FollowUpRecommendation]:
    # sorted() is stable, so equal priorities keep their incoming order.
    return sorted(recs, key=lambda rec: rec.priority.rank)


# ── Similarity ───────────────────────────────────────────────────────────────

_NUMBER_WORDS = {
    "zero": "0", "one": "1", "two": "2", "three": "3", "four": "4", "five": "5",
    "six": "6", "seven": "7", "eight": "8", "nine": "9", "ten": "10",
    "eleven": "11", "twelve": "12", "twenty": "20", "thirty": "30",
}

_STOP_WORDS = frozenset({
    "a", "an", "the", "to", "of", "for", "and", "or", "with",
    "in", "on", "at", "by", "your", "their", "this",
})

_NON_WORD = re.compile(r"[^\w\s]")


def action_tokens(action: str) -> list[str]:
    """Lower-cased, punctuation-free tokens with number words as digits and stop words removed."""
    words = _NON_WORD.sub(" ", action.lower()).split()
    tokens = [_NUMBER_WORDS.get(word, word) for word in words]
    return [token for token in tokens if token not in _STOP_WORDS]


def similarity(a: str, b: str) -> float:
    """Shared tokens divided by the shorter token list's length."""
    tokens_a, tokens_b = action_tokens(a), action_tokens(b)
    shorter = min(len(tokens_a), len(tokens_b))
    if shorter == 0:
        return 0.0
    set_b = set(tokens_b)
    common = sum(1 for token in tokens_a if token in set_b)
    return min(1.0, common / shorter)


def are_similar(
    first: FollowUpRecommendation,
    second: FollowUpRecommendation,
    threshold: float = SIMILARITY_THRESHOLD,
) -> bool:
    return similarity(first.action, second.action) > threshold


# ── Merge ────────────────────────────────────────────────────────────────────

def merge_recommendations(
    rule_recs: list[FollowUpRecommendation],
    ai_recs: list[FollowUpRecommendation],
    ai_limit: int = AI_LIMIT,
    rule_limit: int = RULE_LIMIT,
    threshold: float = SIMILARITY_THRESHOLD,
) -> list[FollowUpRecommendation]:
    """
    Combine AI and rule recommendations into one ranked list.

    With no AI candidates the rule list comes back unchanged. Otherwise the
    first `ai_limit` AI entries precede the first `rule_limit` rule entries,
    any entry too similar to an earlier one is dropped, and the survivors are
    stably sorted by priority.
    """
    if not ai_recs:
        return list(rule_recs)

    combined = list(ai_recs[:ai_limit]) + list(rule_recs[:rule_limit])
    unique: list[FollowUpRecommendation] = []
    for rec in combined:
        duplicate_of = next((kept for kept in unique if are_similar(rec, kept, threshold)), None)
        if duplicate_of is not None:
            logger.debug("Dropping %s as a near-duplicate of %s.", rec.id, duplicate_of.id)
            continue
        unique.append(rec)
    return sort_by_priority(unique)


# ── Insights ─────────────────────────────────────────────────────────────────

_STAGE_INSIGHTS: dict[LeadStage, list[str]] = {
    LeadStage.NEW: ["Focus on building rapport and understanding their specific needs"],
    LeadStage.CONTACTED: ["Qualify their budget and decision-making process"],
    LeadStage.QUALIFIED: ["Present a tailored solution with clear ROI benefits"],
    LeadStage.OPPORTUNITY: ["Address any remaining objections and create urgency"],
    LeadStage.CUSTOMER: ["Focus on onboarding and customer success"],
    LeadStage.LOST: ["Analyze reasons for loss and consider nurture campaigns"],
}


def fallback_insights(workflow: LeadWorkflow, lead: LeadRecord, interest_scale: int = 5) -> list[str]:
    """Stage and interest-band insights used when the AI is unavailable."""
    insights = list(_STAGE_INSIGHTS.get(workflow.current_stage, []))
    if is_high_interest(lead, interest_scale):
        insights.append("High interest level indicates strong buying intent - accelerate the process")
    elif lead.interest_level <= interest_scale * LOW_INTEREST_FRACTION:
        insights.append("Low interest level suggests need for more education and value demonstration")
    return insights or ["Continue standard follow-up process"]


def scoring_recommendations(lead: LeadRecord, estimate: ProbabilityEstimate) -> list[str]:
    """Short action list keyed off the close-probability band."""
    p = estimate.probability
    if p > 0.7:
        recs = [
            "High-priority lead - assign to senior sales rep immediately",
            f"Call within next 2 hours for {round(p * 100)}% close probability",
        ]
        if lead.specific_needs:
            recs.append("Prepare custom proposal addressing specific needs mentioned")
    elif p > 0.4:
        recs = [
            "Send personalized email within 24 hours",
            "Schedule follow-up call for this week",
        ]
        if lead.distinct_pain_points:
            recs.append(f"Focus on pain points: {', '.join(lead.distinct_pain_points[:2])}")
    else:
        recs = [
            "Add to nurture campaign",
            "Gather more information before active pursuit",
        ]
    return recs
