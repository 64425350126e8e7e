"""
lead_engine/models.py — Domain types shared by every engine component.

  - LeadRecord              → immutable snapshot of a prospect (owned by storage)
  - QualificationCriteria   → BANT flags + optional budget/timeline detail
  - LeadWorkflow            → mutable qualification aggregate with stage history
  - SalesRep                → rep annotated with load derived from live leads
  - FollowUpRecommendation  → one ranked next action (rule- or AI-originated)
  - HistoricalOutcomes      → aggregate of similar closed leads
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from lead_engine.exceptions import InvalidInput


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────────

class LeadStage(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in (LeadStage.CUSTOMER, LeadStage.LOST)


# Forward path; LOST is reachable from any non-terminal stage.
STAGE_ORDER: list[LeadStage] = [
    LeadStage.NEW,
    LeadStage.CONTACTED,
    LeadStage.QUALIFIED,
    LeadStage.OPPORTUNITY,
    LeadStage.CUSTOMER,
]


class Availability(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class RecommendationType(str, enum.Enum):
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    CONTENT = "content"
    TASK = "task"


class Priority(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class Origin(str, enum.Enum):
    RULE = "rule"
    AI = "ai"


# ── Lead record ──────────────────────────────────────────────────────────────

class LeadRecord(BaseModel):
    """Read-only snapshot of a prospect as submitted through the intake form."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    interest_level: int = Field(default=1, ge=0, le=10)
    specific_needs: Optional[str] = None
    pain_points: tuple[str, ...] = ()
    territory: Optional[str] = None
    business_type: Optional[str] = None
    monthly_revenue: Optional[str] = None       # ordinal bucket, e.g. "50k-100k"
    number_of_employees: Optional[str] = None   # ordinal bucket, e.g. "21-50"
    decision_makers: Optional[str] = None       # free text, comma-separated names
    package_seen: bool = False
    signed_up: bool = False                     # closed-won
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def has_phone(self) -> bool:
        return bool(self.phone_number and self.phone_number.strip())

    @property
    def has_email(self) -> bool:
        return bool(self.email and self.email.strip())

    @property
    def distinct_pain_points(self) -> list[str]:
        """Pain points de-duplicated case-insensitively, first spelling wins."""
        seen: set[str] = set()
        result = []
        for point in self.pain_points:
            key = point.strip().lower()
            if key and key not in seen:
                seen.add(key)
                result.append(point.strip())
        return result


# ── Qualification ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BudgetRange:
    min: float
    max: float

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < 0:
            raise InvalidInput(f"Budget range must be non-negative, got {self.min}–{self.max}.")
        if self.min > self.max:
            raise InvalidInput(f"Budget minimum {self.min} exceeds maximum {self.max}.")


@dataclass(frozen=True)
class QualificationCriteria:
    has_budget: bool = False
    has_authority: bool = False
    has_need: bool = False
    has_timeline: bool = False
    budget_range: Optional[BudgetRange] = None
    timeline_months: Optional[int] = None
    pain_points: tuple[str, ...] = ()
    decision_maker_identified: bool = False

    def __post_init__(self) -> None:
        if self.timeline_months is not None and self.timeline_months < 0:
            raise InvalidInput(f"timeline_months must be >= 0, got {self.timeline_months}.")

    @property
    def bant_count(self) -> int:
        return sum([self.has_budget, self.has_authority, self.has_need, self.has_timeline])

    def merged_with(self, other: "QualificationCriteria") -> "QualificationCriteria":
        """Combine two criteria sets; a True flag is never turned back to False."""
        points = list(self.pain_points)
        for point in other.pain_points:
            if point not in points:
                points.append(point)
        return replace(
            self,
            has_budget=self.has_budget or other.has_budget,
            has_authority=self.has_authority or other.has_authority,
            has_need=self.has_need or other.has_need,
            has_timeline=self.has_timeline or other.has_timeline,
            budget_range=other.budget_range or self.budget_range,
            timeline_months=(
                other.timeline_months if other.timeline_months is not None else self.timeline_months
            ),
            pain_points=tuple(points),
            decision_maker_identified=self.decision_maker_identified or other.decision_maker_identified,
        )


@dataclass(frozen=True)
class StageTransition:
    from_stage: LeadStage
    to_stage: LeadStage
    transition_date: datetime
    performed_by: str = "system"
    reason: Optional[str] = None


@dataclass
class LeadWorkflow:
    lead_id: str
    current_stage: LeadStage = LeadStage.NEW
    qualification_score: int = 0
    criteria: QualificationCriteria = field(default_factory=QualificationCriteria)
    stage_history: list[StageTransition] = field(default_factory=list)
    next_actions: list[str] = field(default_factory=list)
    assigned_to: Optional[str] = None
    previous_stage: Optional[LeadStage] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


# ── Sales reps ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SalesRep:
    id: str
    name: str
    territories: frozenset[str]
    max_capacity: int
    current_load: int = 0
    conversion_rate: float = 0.0       # 0–1
    avg_days_to_close: float = 30.0
    avg_deal_size: float = 0.0

    def __post_init__(self) -> None:
        if self.avg_deal_size < 0:
            raise InvalidInput(f"Rep {self.id} avg_deal_size must be >= 0, got {self.avg_deal_size}.")
        if self.max_capacity <= 0:
            raise InvalidInput(f"Rep {self.id} max_capacity must be > 0, got {self.max_capacity}.")
        if self.current_load < 0:
            raise InvalidInput(f"Rep {self.id} current_load must be >= 0, got {self.current_load}.")
        if not 0.0 <= self.conversion_rate <= 1.0:
            raise InvalidInput(f"Rep {self.id} conversion_rate must be within 0–1.")

    def serves(self, territory: str) -> bool:
        return territory in self.territories


# ── Recommendations ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FollowUpRecommendation:
    id: str
    type: RecommendationType
    priority: Priority
    action: str
    reason: str
    suggested_timing: str
    origin: Origin = Origin.RULE
    template: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.action or not self.action.strip():
            raise InvalidInput(f"Recommendation {self.id} has an empty action.")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "priority": self.priority.value,
            "action": self.action,
            "reason": self.reason,
            "suggested_timing": self.suggested_timing,
            "origin": self.origin.value,
            "template": self.template,
        }


# ── Historical aggregate ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class HistoricalOutcomes:
    similar_leads_count: int = 0
    conversion_rate: float = 0.25      # 0–1
    avg_days_to_close: float = 30.0


DEFAULT_HISTORY = HistoricalOutcomes()
