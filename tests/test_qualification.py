"""
tests/test_qualification.py — Unit tests for the qualification scorer.

Pure functions only; no DB or LLM involved.
"""

from dataclasses import replace

import pytest

from conftest import make_lead
from lead_engine.exceptions import InvalidInput
from lead_engine.models import BudgetRange, LeadStage, QualificationCriteria
from lead_engine.services.qualification import (
    DEFAULT_WEIGHTS,
    LeadTemperature,
    calculate_qualification_score,
    days_to_follow_up,
    furthest_stage,
    infer_criteria,
    infer_stage,
    lead_temperature,
    mid_interest_threshold,
    qualify,
    score_factors,
    top_interest_threshold,
)


# ── Score ─────────────────────────────────────────────────────────────────────

class TestQualificationScore:
    def test_default_lead_score(self, lead):
        # base 15 + revenue 8 + employees 4 + interest 12
        assert qualify(lead).score == 39

    def test_top_quartile_scenario(self):
        lead = make_lead(
            interest_level=5,
            monthly_revenue="250k+",
            number_of_employees=None,
            email="owner@example.com",
            specific_needs="Needs a way to accept crypto from tourists",
        )
        assert qualify(lead).score >= 75

    def test_score_is_clamped_to_100(self, hot_lead):
        criteria = QualificationCriteria(
            has_budget=True,
            has_timeline=True,
            timeline_months=2,
            budget_range=BudgetRange(50_000, 80_000),
        )
        assert qualify(hot_lead, criteria).score == 100

    def test_empty_lead_gets_base_only(self):
        lead = make_lead(
            phone_number=None, interest_level=0, monthly_revenue=None, number_of_employees=None,
        )
        assert qualify(lead).score == DEFAULT_WEIGHTS.base

    def test_unknown_bucket_contributes_zero(self):
        known = qualify(make_lead(monthly_revenue=None)).score
        unknown = qualify(make_lead(monthly_revenue="about a million")).score
        assert known == unknown

    @pytest.mark.parametrize("scale", [5, 10])
    def test_monotonic_in_interest(self, scale):
        scores = [
            qualify(make_lead(interest_level=level), interest_scale=scale).score
            for level in range(0, scale + 1)
        ]
        assert scores == sorted(scores)
        assert all(0 <= s <= 100 for s in scores)

    def test_pain_points_capped(self):
        three = make_lead(pain_points=["a", "b", "c"])
        six = make_lead(pain_points=["a", "b", "c", "d", "e", "f"])
        assert qualify(three).score == qualify(six).score

    def test_duplicate_pain_points_count_once(self):
        once = make_lead(pain_points=["Card fees"])
        twice = make_lead(pain_points=["Card fees", "card fees "])
        assert qualify(once).score == qualify(twice).score

    def test_budget_range_ignored_without_has_budget(self, lead):
        with_range = QualificationCriteria(budget_range=BudgetRange(30_000, 60_000))
        assert qualify(lead, with_range).score == qualify(lead).score

    def test_significant_budget_bonus(self, lead):
        small = QualificationCriteria(has_budget=True, budget_range=BudgetRange(1_000, 5_000))
        large = QualificationCriteria(has_budget=True, budget_range=BudgetRange(25_000, 40_000))
        assert qualify(lead, large).score - qualify(lead, small).score == DEFAULT_WEIGHTS.significant_budget_bonus

    def test_custom_weights(self, lead):
        weights = replace(DEFAULT_WEIGHTS, base=0)
        criteria = infer_criteria(lead)
        assert calculate_qualification_score(lead, criteria, weights) == 24

    def test_idempotent(self, hot_lead):
        assert qualify(hot_lead) == qualify(hot_lead)


# ── Criteria ──────────────────────────────────────────────────────────────────

class TestCriteria:
    def test_budget_min_above_max_rejected(self):
        with pytest.raises(InvalidInput):
            BudgetRange(min=10_000, max=5_000)

    def test_negative_budget_rejected(self):
        with pytest.raises(InvalidInput):
            BudgetRange(min=-1, max=5_000)

    def test_negative_timeline_rejected(self):
        with pytest.raises(InvalidInput):
            QualificationCriteria(timeline_months=-3)

    def test_need_inferred_from_pain_points(self):
        criteria = infer_criteria(make_lead(pain_points=["Slow settlement"]))
        assert criteria.has_need
        assert criteria.pain_points == ("Slow settlement",)

    def test_authority_inferred_from_decision_makers(self):
        criteria = infer_criteria(make_lead(decision_makers="Owner"))
        assert criteria.has_authority
        assert criteria.decision_maker_identified

    def test_timeline_inferred_from_months(self, lead):
        criteria = infer_criteria(lead, QualificationCriteria(timeline_months=3))
        assert criteria.has_timeline

    def test_inference_never_regresses_a_flag(self, lead):
        supplied = QualificationCriteria(has_need=True, has_authority=True)
        criteria = infer_criteria(lead, supplied)
        assert criteria.has_need and criteria.has_authority

    def test_budget_is_never_inferred(self, hot_lead):
        assert not infer_criteria(hot_lead).has_budget


# ── Stage ─────────────────────────────────────────────────────────────────────

class TestStageInference:
    def test_thresholds_for_both_scales(self):
        assert (top_interest_threshold(5), mid_interest_threshold(5)) == (4, 3)
        assert (top_interest_threshold(10), mid_interest_threshold(10)) == (8, 6)

    def test_signed_up_is_customer(self):
        assert infer_stage(make_lead(signed_up=True, interest_level=1)) == LeadStage.CUSTOMER

    def test_high_interest_and_package_is_opportunity(self, hot_lead):
        assert infer_stage(hot_lead) == LeadStage.OPPORTUNITY

    def test_high_interest_without_package_is_qualified(self):
        assert infer_stage(make_lead(interest_level=5)) == LeadStage.QUALIFIED

    def test_contact_channel_is_contacted(self):
        assert infer_stage(make_lead(interest_level=1)) == LeadStage.CONTACTED

    def test_no_channel_is_new(self):
        assert infer_stage(make_lead(interest_level=1, phone_number=None)) == LeadStage.NEW

    def test_ten_point_scale(self):
        assert infer_stage(make_lead(interest_level=6), interest_scale=10) == LeadStage.QUALIFIED
        assert infer_stage(make_lead(interest_level=5), interest_scale=10) == LeadStage.CONTACTED

    def test_furthest_stage_never_moves_back(self):
        assert furthest_stage(LeadStage.OPPORTUNITY, LeadStage.CONTACTED) == LeadStage.OPPORTUNITY
        assert furthest_stage(LeadStage.CONTACTED, LeadStage.QUALIFIED) == LeadStage.QUALIFIED

    def test_terminal_stage_sticks(self):
        assert furthest_stage(LeadStage.LOST, LeadStage.QUALIFIED) == LeadStage.LOST

    def test_qualify_respects_current_stage(self):
        result = qualify(make_lead(interest_level=1), current_stage=LeadStage.QUALIFIED)
        assert result.stage == LeadStage.QUALIFIED


# ── Helpers ───────────────────────────────────────────────────────────────────

class TestTemperatureAndFactors:
    @pytest.mark.parametrize("score,temperature,days", [
        (95, LeadTemperature.HOT, 0),
        (65, LeadTemperature.WARM, 1),
        (45, LeadTemperature.COOL, 3),
        (10, LeadTemperature.COLD, 7),
    ])
    def test_bands(self, score, temperature, days):
        assert lead_temperature(score) == temperature
        assert days_to_follow_up(score) == days

    def test_factors(self, hot_lead):
        factors = {f.name: f for f in score_factors(hot_lead)}
        assert factors["Interest Level"].impact == 0.8
        assert factors["Interest Level"].value == "5/5"
        assert factors["Monthly Revenue"].impact == 1.0
        assert factors["Pain Points"].value == "3 identified"

    def test_factors_skip_missing_fields(self):
        lead = make_lead(monthly_revenue=None, number_of_employees=None)
        assert [f.name for f in score_factors(lead)] == ["Interest Level"]
