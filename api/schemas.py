"""
api/schemas.py — Pydantic request/response models for all API endpoints.

These are the API contract — separate from the engine's domain types and the
DB ORM models so we can control exactly what data is exposed over HTTP.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from lead_engine.models import (
    BudgetRange,
    LeadRecord,
    LeadStage,
    LeadWorkflow,
    QualificationCriteria,
    SalesRep,
)
from lead_engine.services.assignment import AssignmentMode, Urgency


# ── Lead ─────────────────────────────────────────────────────────────────────

class LeadIn(BaseModel):
    id: str = Field(..., min_length=1)
    owner_name: str = Field(..., min_length=1)
    phone_number: Optional[str] = None
    email: Optional[str] = None
    interest_level: int = Field(default=1, ge=0, le=10)
    specific_needs: Optional[str] = None
    pain_points: list[str] = Field(default_factory=list)
    territory: Optional[str] = None
    business_type: Optional[str] = None
    monthly_revenue: Optional[str] = Field(default=None, description='Bucket label, e.g. "50k-100k"')
    number_of_employees: Optional[str] = Field(default=None, description='Bucket label, e.g. "21-50"')
    decision_makers: Optional[str] = None
    package_seen: bool = False
    signed_up: bool = False
    created_at: Optional[datetime] = None

    def to_record(self) -> LeadRecord:
        data = self.model_dump(exclude_none=True)
        data["pain_points"] = tuple(self.pain_points)
        return LeadRecord(**data)


class LeadOut(BaseModel):
    id: str
    owner_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    interest_level: int
    specific_needs: Optional[str] = None
    pain_points: list[str] = Field(default_factory=list)
    territory: Optional[str] = None
    business_type: Optional[str] = None
    monthly_revenue: Optional[str] = None
    number_of_employees: Optional[str] = None
    decision_makers: Optional[str] = None
    package_seen: bool
    signed_up: bool
    stage: LeadStage
    qualification_score: Optional[int] = None
    assigned_rep_id: Optional[str] = None
    created_at: Optional[datetime] = None


# ── Qualification ────────────────────────────────────────────────────────────

class BudgetRangeIn(BaseModel):
    min: float
    max: float


class CriteriaIn(BaseModel):
    has_budget: bool = False
    has_authority: bool = False
    has_need: bool = False
    has_timeline: bool = False
    budget_range: Optional[BudgetRangeIn] = None
    timeline_months: Optional[int] = None
    pain_points: list[str] = Field(default_factory=list)
    decision_maker_identified: bool = False

    def to_criteria(self) -> QualificationCriteria:
        """Raises InvalidInput for a reversed/negative budget or negative timeline."""
        budget = (
            BudgetRange(min=self.budget_range.min, max=self.budget_range.max)
            if self.budget_range is not None
            else None
        )
        return QualificationCriteria(
            has_budget=self.has_budget,
            has_authority=self.has_authority,
            has_need=self.has_need,
            has_timeline=self.has_timeline,
            budget_range=budget,
            timeline_months=self.timeline_months,
            pain_points=tuple(self.pain_points),
            decision_maker_identified=self.decision_maker_identified,
        )


class CriteriaOut(BaseModel):
    has_budget: bool
    has_authority: bool
    has_need: bool
    has_timeline: bool
    budget_range: Optional[BudgetRangeIn] = None
    timeline_months: Optional[int] = None
    pain_points: list[str]
    decision_maker_identified: bool

    @classmethod
    def from_criteria(cls, criteria: QualificationCriteria) -> "CriteriaOut":
        budget = criteria.budget_range
        return cls(
            has_budget=criteria.has_budget,
            has_authority=criteria.has_authority,
            has_need=criteria.has_need,
            has_timeline=criteria.has_timeline,
            budget_range=BudgetRangeIn(min=budget.min, max=budget.max) if budget else None,
            timeline_months=criteria.timeline_months,
            pain_points=list(criteria.pain_points),
            decision_maker_identified=criteria.decision_maker_identified,
        )


class WorkflowIn(BaseModel):
    """Caller-held workflow state; the engine itself stores none."""
    current_stage: LeadStage = LeadStage.NEW
    qualification_score: int = Field(default=0, ge=0, le=100)
    criteria: CriteriaIn = Field(default_factory=CriteriaIn)
    assigned_to: Optional[str] = None

    def to_workflow(self, lead_id: str) -> LeadWorkflow:
        return LeadWorkflow(
            lead_id=lead_id,
            current_stage=self.current_stage,
            qualification_score=self.qualification_score,
            criteria=self.criteria.to_criteria(),
            assigned_to=self.assigned_to,
        )


class QualifyRequest(BaseModel):
    lead: LeadIn
    criteria: Optional[CriteriaIn] = None
    workflow: Optional[WorkflowIn] = None


class ScoreFactorOut(BaseModel):
    name: str
    impact: float
    value: str


class QualifyResponse(BaseModel):
    criteria: CriteriaOut
    score: int
    stage: LeadStage
    temperature: str
    days_to_follow_up: int
    factors: list[ScoreFactorOut]
    next_actions: list[str]


# ── Probability ──────────────────────────────────────────────────────────────

class ProbabilityRequest(BaseModel):
    lead: LeadIn
    workflow: Optional[WorkflowIn] = Field(
        default=None,
        description="Omit to qualify the lead first and use that score.",
    )


class HistoryOut(BaseModel):
    similar_leads_count: int
    conversion_rate: float
    avg_days_to_close: float


class ProbabilityResponse(BaseModel):
    probability: float
    eta_days: int
    score_multiplier: float
    enhanced_score: int
    history: HistoryOut


class DealProbabilityRequest(BaseModel):
    lead: LeadIn
    workflow: Optional[WorkflowIn] = Field(
        default=None,
        description="Omit to qualify the lead first and use that workflow.",
    )
    previous_customer: bool = False
    referral_source: bool = False


class DealProbabilityResponse(BaseModel):
    probability: int
    label: str
    confidence: str
    base_score: int
    quality_bonus: int
    engagement_bonus: int
    business_bonus: int
    historical_bonus: int
    penalties: int
    insights: list[str]


# ── Assignment ───────────────────────────────────────────────────────────────

class RepIn(BaseModel):
    id: str
    name: str
    territories: list[str]
    max_capacity: int = Field(..., gt=0)
    current_load: int = Field(default=0, ge=0)
    conversion_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    avg_days_to_close: float = 30.0
    avg_deal_size: float = Field(default=0.0, ge=0.0)

    def to_rep(self) -> SalesRep:
        return SalesRep(
            id=self.id,
            name=self.name,
            territories=frozenset(self.territories),
            max_capacity=self.max_capacity,
            current_load=self.current_load,
            conversion_rate=self.conversion_rate,
            avg_days_to_close=self.avg_days_to_close,
            avg_deal_size=self.avg_deal_size,
        )


class AssignRequest(BaseModel):
    territory: str = Field(..., min_length=1)
    reps: Optional[list[RepIn]] = Field(
        default=None,
        description="Candidate reps with current load. Omit to derive the roster from the lead store.",
    )
    mode: AssignmentMode = AssignmentMode.AUTO
    rep_id: Optional[str] = None
    force: bool = False
    urgency: Urgency = Urgency.MEDIUM
    deal_size: Optional[float] = Field(default=None, ge=0, description="Expected deal value; large deals go to specialists")
    allow_nearby: bool = Field(default=False, description="Fall back to a rep from a neighbouring territory")


class AssignmentOut(BaseModel):
    rep_id: Optional[str] = None
    overflow: bool
    reason: str
    territory: str
    load_percentage: Optional[float] = None
    alternative_rep_ids: list[str] = Field(default_factory=list)
    nearby_territories: list[str] = Field(default_factory=list)


class RosterEntryOut(BaseModel):
    rep_id: str
    name: str
    current_load: int
    max_capacity: int
    load_percentage: float
    availability: str
    status: str
    conversion_rate: float


class ReassignmentOut(BaseModel):
    territory: str
    suggested_rep_ids: list[str]


# ── Recommendations ──────────────────────────────────────────────────────────

class RecommendRequest(BaseModel):
    lead: LeadIn
    workflow: Optional[WorkflowIn] = None


class RecommendationOut(BaseModel):
    id: str
    type: str
    priority: str
    action: str
    reason: str
    suggested_timing: str
    origin: str
    template: Optional[str] = None


class RecommendResponse(BaseModel):
    recommendations: list[RecommendationOut]
    ai_enabled: bool
    superseded: bool = False
