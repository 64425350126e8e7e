"""
lead_engine/services/lead_service.py — Orchestrates the scoring → assignment →
follow-up pipeline for the presentation layer.

This is the "glue" layer that coordinates:
  - Qualification scoring and the stage workflow
  - Close-probability estimation (history from the store, defaults on failure)
  - Territory assignment over a roster derived from live open leads
  - Rule recommendations, merged with AI suggestions when the adapter is up

Nothing here persists results; callers decide what to store.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol

from lead_engine.ai_engine.adapter import AIAdapter, AIConfig, LeadAnalysis, input_completeness
from lead_engine.ai_engine.classifier import template_type_for
from lead_engine.ai_engine.coordinator import LatestRequestCoordinator
from lead_engine.exceptions import InvalidInput
from lead_engine.models import (
    FollowUpRecommendation,
    HistoricalOutcomes,
    LeadRecord,
    LeadWorkflow,
    QualificationCriteria,
    RecommendationType,
    SalesRep,
)
from lead_engine.services.assignment import (
    DEFAULT_BALANCER,
    AssignmentMode,
    AssignmentResult,
    BalancerConfig,
    Urgency,
    assign,
    build_roster,
    suggest_territory_reassignment,
)
from lead_engine.services.probability import (
    DEFAULT_ESTIMATOR,
    DealFactors,
    DealProbability,
    EstimatorConfig,
    ProbabilityEstimate,
    deal_probability,
    enhanced_score,
    estimate_probability,
    load_history,
)
from lead_engine.services.qualification import (
    DEFAULT_WEIGHTS,
    QualificationResult,
    ScoreFactor,
    ScoringWeights,
    qualify,
)
from lead_engine.services.recommendations import (
    fallback_insights,
    merge_recommendations,
    rule_recommendations,
    scoring_recommendations,
)
from lead_engine.services.workflow import apply_qualification, start_workflow

logger = logging.getLogger(__name__)

_SUPERSEDED = object()


class LeadStore(Protocol):
    """Storage collaborator consumed by the engine (see lead_engine.db.repository.SqlLeadStore)."""

    def fetch_lead_record(self, lead_id: str) -> Optional[LeadRecord]: ...

    def fetch_open_leads_by_rep_and_territory(
        self, rep_id: str, territory: Optional[str] = None
    ) -> list[LeadRecord]: ...

    def fetch_historical_outcomes(self, interest_range: tuple[int, int]) -> HistoricalOutcomes: ...

    def list_rep_profiles(self) -> list[SalesRep]: ...

    def list_open_lead_assignments(self) -> list[tuple[str, Optional[str]]]: ...


@dataclass
class LeadScoreReport:
    """Rule score blended with the probability estimate and optional AI analysis."""
    base_score: int
    score: int                      # base_score scaled by the estimate's multiplier
    confidence: int                 # input completeness, 0 – 100
    factors: list[ScoreFactor]
    estimate: ProbabilityEstimate
    recommendations: list[str]
    ai_analysis: Optional[LeadAnalysis] = None
    insights: list[str] = field(default_factory=list)


class LeadEngine:
    """
    Entry point for every engine operation.

    Args:
        store:          Storage collaborator; optional for pure scoring calls.
        ai:             AI adapter; None runs on rules alone.
        weights:        Qualification weight table.
        estimator:      Probability blend and boost factors.
        balancer:       Assignment tuning and territory proximity.
        interest_scale: Top of the interest scale (5 or 10).
    """

    def __init__(
        self,
        store: Optional[LeadStore] = None,
        ai: Optional[AIAdapter] = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        estimator: EstimatorConfig = DEFAULT_ESTIMATOR,
        balancer: BalancerConfig = DEFAULT_BALANCER,
        interest_scale: int = 5,
        coordinator: Optional[LatestRequestCoordinator] = None,
    ):
        self.store = store
        self.ai = ai
        self.weights = weights
        self.estimator = estimator
        self.balancer = balancer
        self.interest_scale = interest_scale
        self.coordinator = coordinator or LatestRequestCoordinator()

    @classmethod
    def from_settings(cls, settings, store: Optional[LeadStore] = None) -> "LeadEngine":
        ai = AIAdapter(
            AIConfig.from_settings(settings),
            product_description=settings.product_description,
            interest_scale=settings.interest_scale,
        )
        return cls(store=store, ai=ai, interest_scale=settings.interest_scale)

    @property
    def ai_available(self) -> bool:
        return self.ai is not None and self.ai.is_available()

    # ── Qualification ─────────────────────────────────────────────────────────

    def qualify(
        self,
        lead: LeadRecord,
        criteria: Optional[QualificationCriteria] = None,
        workflow: Optional[LeadWorkflow] = None,
    ) -> QualificationResult:
        """
        Score the lead. With a workflow, its stage is the floor and its
        criteria are carried forward under any newly supplied ones.
        """
        current_stage = None
        if workflow is not None:
            criteria = workflow.criteria.merged_with(criteria or QualificationCriteria())
            current_stage = workflow.current_stage
        return qualify(
            lead,
            criteria,
            weights=self.weights,
            interest_scale=self.interest_scale,
            current_stage=current_stage,
        )

    def qualify_workflow(
        self,
        lead: LeadRecord,
        criteria: Optional[QualificationCriteria] = None,
        workflow: Optional[LeadWorkflow] = None,
        performed_by: str = "system",
        result: Optional[QualificationResult] = None,
    ) -> LeadWorkflow:
        """Start a workflow for the lead, or fold a fresh qualification into an existing one."""
        result = result or self.qualify(lead, criteria, workflow)
        if workflow is None:
            return start_workflow(lead, result, performed_by)
        return apply_qualification(workflow, result, performed_by)

    # ── Probability ───────────────────────────────────────────────────────────

    def history_for(self, lead: LeadRecord) -> HistoricalOutcomes:
        fetch = self.store.fetch_historical_outcomes if self.store is not None else None
        return load_history(fetch, lead)

    def estimate_probability(
        self,
        workflow: LeadWorkflow,
        lead: LeadRecord,
        history: Optional[HistoricalOutcomes] = None,
    ) -> ProbabilityEstimate:
        return estimate_probability(
            workflow,
            lead,
            history if history is not None else self.history_for(lead),
            config=self.estimator,
            interest_scale=self.interest_scale,
        )

    def deal_probability(
        self,
        workflow: LeadWorkflow,
        lead: LeadRecord,
        factors: Optional[DealFactors] = None,
    ) -> DealProbability:
        return deal_probability(workflow, lead, factors, interest_scale=self.interest_scale)

    # ── Assignment ────────────────────────────────────────────────────────────

    def roster(self, territory: Optional[str] = None) -> list[SalesRep]:
        """Rep profiles from the store with load counted from open leads."""
        if self.store is None:
            raise InvalidInput("No lead store configured; pass the rep roster explicitly.")
        return build_roster(
            self.store.list_rep_profiles(),
            self.store.list_open_lead_assignments(),
            territory,
        )

    def assign(
        self,
        territory: str,
        reps: Optional[list[SalesRep]] = None,
        mode: AssignmentMode = AssignmentMode.AUTO,
        rep_id: Optional[str] = None,
        force: bool = False,
        urgency: Urgency = Urgency.MEDIUM,
        deal_size: Optional[float] = None,
        allow_nearby: bool = False,
    ) -> AssignmentResult:
        if not territory:
            raise InvalidInput("A territory is required for assignment.")
        if reps is None:
            reps = self.roster(territory)
            if allow_nearby and not any(rep.serves(territory) for rep in reps):
                # Neighbouring reps are judged on their whole book.
                reps = self.roster()
        return assign(
            territory,
            reps,
            mode=AssignmentMode(mode),
            rep_id=rep_id,
            force=force,
            urgency=Urgency(urgency),
            config=self.balancer,
            deal_size=deal_size,
            allow_nearby=allow_nearby,
        )

    def reassignment_suggestions(
        self,
        territories: Optional[list[str]] = None,
        reps: Optional[list[SalesRep]] = None,
    ) -> dict[str, list[str]]:
        """Helpers for uncovered or overloaded territories (every known territory by default)."""
        if reps is None:
            reps = self.roster()
        if territories is None:
            territories = list(self.balancer.proximity)
        return suggest_territory_reassignment(reps, territories, self.balancer)

    # ── Recommendations ───────────────────────────────────────────────────────

    async def recommend(
        self, workflow: LeadWorkflow, lead: LeadRecord
    ) -> Optional[list[FollowUpRecommendation]]:
        """
        Ranked follow-ups for the lead.

        Returns rule recommendations alone when the AI is unavailable. Returns
        None when a newer recommend() call for the same lead superseded this
        one; that result must not be applied.
        """
        rules = rule_recommendations(workflow, lead, self.interest_scale)
        if not self.ai_available:
            return rules

        ai_recs = await self.coordinator.run(
            ("recommend", lead.id),
            lambda: self.ai.suggest_follow_ups(lead, workflow.current_stage),
        )
        if ai_recs is None:
            return None
        merged = merge_recommendations(rules, ai_recs)
        logger.info(
            "Recommendations for lead %s: %d rule, %d AI → %d merged.",
            lead.id, len(rules), len(ai_recs), len(merged),
        )
        return merged

    async def email_template(
        self, recommendation: FollowUpRecommendation, lead: LeadRecord
    ) -> Optional[str]:
        """Personalized email body for an email recommendation, else its static template."""
        if recommendation.type != RecommendationType.EMAIL:
            return None
        if self.ai_available:
            text = await self.ai.generate_email_template(lead, template_type_for(recommendation))
            if text:
                return text
        return recommendation.template

    # ── Analysis ──────────────────────────────────────────────────────────────

    async def analyze(
        self, lead: LeadRecord, workflow: Optional[LeadWorkflow] = None
    ) -> Optional[LeadScoreReport]:
        """
        Probability-adjusted score with optional AI commentary.

        Returns None only when a newer analyze() call for the same lead
        superseded this one.
        """
        qualification = self.qualify(lead, workflow=workflow)
        if workflow is None:
            workflow = start_workflow(lead, qualification)
        else:
            # Estimate from the fresh score; the caller's workflow stays untouched.
            workflow = apply_qualification(
                replace(workflow, stage_history=list(workflow.stage_history)), qualification,
            )
        history = self.history_for(lead)
        estimate = self.estimate_probability(workflow, lead, history)

        report = LeadScoreReport(
            base_score=qualification.score,
            score=enhanced_score(qualification.score, estimate),
            confidence=input_completeness(lead),
            factors=qualification.factors,
            estimate=estimate,
            recommendations=scoring_recommendations(lead, estimate),
        )
        if not self.ai_available:
            return report

        analysis = await self.coordinator.run(
            ("analyze", lead.id),
            lambda: self.ai.enhance_lead_analysis(lead, qualification.score, history),
            stale=_SUPERSEDED,
        )
        if analysis is _SUPERSEDED:
            return None
        if analysis is None:
            return report
        report.ai_analysis = analysis
        report.insights = list(analysis.insights)
        return report

    async def strategic_insights(self, workflow: LeadWorkflow, lead: LeadRecord) -> list[str]:
        """AI strategy lines when available, otherwise stage and interest heuristics."""
        if self.ai_available:
            strategies = await self.ai.generate_follow_up_strategy(lead, workflow.current_stage)
            if strategies:
                return strategies
        return fallback_insights(workflow, lead, self.interest_scale)
