"""
tests/test_probability.py — Close-probability estimator tests.
"""

from datetime import timedelta

import pytest

from conftest import NOW, make_lead
from lead_engine.models import (
    DEFAULT_HISTORY,
    BudgetRange,
    HistoricalOutcomes,
    LeadStage,
    LeadWorkflow,
    QualificationCriteria,
    StageTransition,
)
from lead_engine.services.probability import (
    DealConfidence,
    DealFactors,
    deal_probability,
    enhanced_score,
    estimate_probability,
    interest_window,
    load_history,
    probability_label,
)
from lead_engine.services.qualification import qualify
from lead_engine.services.workflow import start_workflow


def _workflow(score: int) -> LeadWorkflow:
    return LeadWorkflow(lead_id="lead-1", qualification_score=score)


# ── Historical data ───────────────────────────────────────────────────────────

class TestLoadHistory:
    def test_interest_window(self):
        assert interest_window(3) == (2, 4)
        assert interest_window(0) == (0, 1)

    def test_fetch_failure_uses_defaults(self, lead):
        def broken(_window):
            raise ConnectionError("db down")

        history = load_history(broken, lead)
        assert history == DEFAULT_HISTORY
        assert (history.conversion_rate, history.avg_days_to_close) == (0.25, 30.0)

    def test_empty_result_uses_defaults(self, lead):
        assert load_history(lambda _w: HistoricalOutcomes(similar_leads_count=0, conversion_rate=0.9), lead) == DEFAULT_HISTORY

    def test_no_fetcher_uses_defaults(self, lead):
        assert load_history(None, lead) == DEFAULT_HISTORY

    def test_fetch_receives_window(self, lead):
        seen = []
        real = HistoricalOutcomes(similar_leads_count=12, conversion_rate=0.4, avg_days_to_close=18)

        def fetch(window):
            seen.append(window)
            return real

        assert load_history(fetch, lead) == real
        assert seen == [(2, 4)]


# ── Estimate ──────────────────────────────────────────────────────────────────

class TestEstimateProbability:
    def test_blend_without_boosts(self, lead):
        estimate = estimate_probability(_workflow(39), lead)
        # 0.6 * 0.39 + 0.4 * 0.25
        assert estimate.probability == 0.33
        assert estimate.eta_days == 20
        assert estimate.history == DEFAULT_HISTORY

    def test_boosts_respect_ceiling(self, hot_lead):
        estimate = estimate_probability(_workflow(100), hot_lead)
        assert estimate.probability == 0.95

    def test_eta_never_below_one_day(self, hot_lead):
        fast = HistoricalOutcomes(similar_leads_count=5, conversion_rate=1.0, avg_days_to_close=10)
        assert estimate_probability(_workflow(100), hot_lead, fast).eta_days == 1

    def test_zero_score_zero_history(self, lead):
        empty = HistoricalOutcomes(similar_leads_count=5, conversion_rate=0.0, avg_days_to_close=30)
        estimate = estimate_probability(_workflow(0), lead, empty)
        assert estimate.probability == 0.0
        assert estimate.eta_days == 30

    def test_high_interest_boost(self):
        low = estimate_probability(_workflow(50), make_lead(interest_level=3))
        high = estimate_probability(_workflow(50), make_lead(interest_level=4))
        assert high.probability > low.probability

    @pytest.mark.parametrize("score", [0, 25, 50, 75, 100])
    def test_bounds(self, hot_lead, score):
        estimate = estimate_probability(_workflow(score), hot_lead)
        assert 0.0 <= estimate.probability <= 0.95
        assert estimate.eta_days >= 1
        assert 0.8 <= estimate.score_multiplier <= 1.2

    def test_deterministic(self, hot_lead):
        assert estimate_probability(_workflow(70), hot_lead) == estimate_probability(_workflow(70), hot_lead)


class TestEnhancedScore:
    def test_multiplier_applied(self, lead):
        estimate = estimate_probability(_workflow(39), lead)
        assert enhanced_score(39, estimate) == 36

    def test_clamped(self, hot_lead):
        estimate = estimate_probability(_workflow(100), hot_lead)
        assert enhanced_score(100, estimate) == 100


# ── Deal probability breakdown ────────────────────────────────────────────────

def _transition(from_stage, to_stage, when):
    return StageTransition(from_stage=from_stage, to_stage=to_stage, transition_date=when)


FULL_BANT = QualificationCriteria(
    has_budget=True,
    has_authority=True,
    has_need=True,
    has_timeline=True,
    budget_range=BudgetRange(30000, 50000),
    timeline_months=2,
)


class TestDealProbability:
    def test_freshly_qualified_lead(self, lead):
        workflow = start_workflow(lead, qualify(lead), now=NOW)
        deal = deal_probability(workflow, lead, now=NOW)

        assert deal.base_score == 35
        assert deal.quality_bonus == 5
        assert deal.engagement_bonus == 0
        assert deal.business_bonus == 0
        assert deal.historical_bonus == 5       # two hops on the same day
        assert deal.penalties == 15             # no budget, no authority
        assert deal.probability == 30
        assert deal.confidence == DealConfidence.LOW
        assert deal.label == "Unlikely"
        assert deal.insights[0] == "Needs nurturing - focus on qualification"
        assert "No budget identified (major risk)" in deal.insights

    def test_hot_opportunity_is_capped(self, hot_lead):
        workflow = LeadWorkflow(
            lead_id=hot_lead.id,
            current_stage=LeadStage.OPPORTUNITY,
            qualification_score=85,
            criteria=FULL_BANT,
        )
        deal = deal_probability(workflow, hot_lead, now=NOW)

        assert deal.base_score == 65
        assert deal.quality_bonus == 25
        assert deal.engagement_bonus == 15
        assert deal.business_bonus == 15
        assert deal.penalties == 0
        assert deal.probability == 100
        assert deal.label == "Very Likely"
        assert deal.insights[0] == "Hot deal - prioritize immediate action"
        assert "Multiple stakeholders involved" in deal.insights

    @pytest.mark.parametrize("days,penalties", [(20, 20), (10, 15)])
    def test_stalled_in_contacted(self, days, penalties):
        lead = make_lead(interest_level=1)
        workflow = LeadWorkflow(
            lead_id=lead.id,
            current_stage=LeadStage.CONTACTED,
            qualification_score=20,
            stage_history=[_transition(LeadStage.NEW, LeadStage.CONTACTED, NOW - timedelta(days=days))],
        )
        deal = deal_probability(workflow, lead, now=NOW)
        assert deal.penalties == penalties
        assert deal.probability == 0
        assert ("Stalled in contact stage" in deal.insights) == (days > 14)

    def test_confidence_levels(self, lead):
        history = [
            _transition(LeadStage.NEW, LeadStage.CONTACTED, NOW - timedelta(days=3)),
            _transition(LeadStage.CONTACTED, LeadStage.QUALIFIED, NOW - timedelta(days=2)),
            _transition(LeadStage.QUALIFIED, LeadStage.OPPORTUNITY, NOW - timedelta(days=1)),
        ]
        three_bant = QualificationCriteria(has_budget=True, has_authority=True, has_need=True)
        two_bant = QualificationCriteria(has_budget=True, has_authority=True)

        high = LeadWorkflow(lead_id=lead.id, criteria=three_bant, stage_history=history)
        medium = LeadWorkflow(lead_id=lead.id, criteria=two_bant, stage_history=history[:2])
        low = LeadWorkflow(lead_id=lead.id, criteria=three_bant, stage_history=history[:1])

        assert deal_probability(high, lead, now=NOW).confidence == DealConfidence.HIGH
        assert deal_probability(medium, lead, now=NOW).confidence == DealConfidence.MEDIUM
        assert deal_probability(low, lead, now=NOW).confidence == DealConfidence.LOW

    def test_slow_progression_earns_nothing(self, lead):
        workflow = LeadWorkflow(
            lead_id=lead.id,
            current_stage=LeadStage.QUALIFIED,
            stage_history=[
                _transition(LeadStage.NEW, LeadStage.CONTACTED, NOW - timedelta(days=30)),
                _transition(LeadStage.CONTACTED, LeadStage.QUALIFIED, NOW),
            ],
        )
        assert deal_probability(workflow, lead, now=NOW).historical_bonus == 0

    def test_relationship_factors(self, lead):
        workflow = LeadWorkflow(lead_id=lead.id, current_stage=LeadStage.QUALIFIED)
        factors = DealFactors(previous_customer=True, referral_source=True)
        deal = deal_probability(workflow, lead, factors, now=NOW)
        assert deal.historical_bonus == 10
        assert "Referral leads have higher close rates" in deal.insights

    def test_lost_stage_starts_at_zero(self, lead):
        workflow = LeadWorkflow(lead_id=lead.id, current_stage=LeadStage.LOST, criteria=FULL_BANT)
        assert deal_probability(workflow, lead, now=NOW).base_score == 0

    @pytest.mark.parametrize("probability,label", [
        (100, "Very Likely"),
        (80, "Very Likely"),
        (79, "Likely"),
        (60, "Likely"),
        (40, "Possible"),
        (20, "Unlikely"),
        (19, "Very Unlikely"),
        (0, "Very Unlikely"),
    ])
    def test_labels(self, probability, label):
        assert probability_label(probability) == label
