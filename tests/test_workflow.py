"""
tests/test_workflow.py — Stage graph and workflow lifecycle tests.
"""

from datetime import timedelta

import pytest

from conftest import NOW, make_lead
from lead_engine.exceptions import InvalidInput
from lead_engine.models import LeadStage, LeadWorkflow, QualificationCriteria
from lead_engine.services import workflow as wf
from lead_engine.services.qualification import qualify


def _workflow(stage: LeadStage = LeadStage.NEW) -> LeadWorkflow:
    return LeadWorkflow(lead_id="lead-1", current_stage=stage, created_at=NOW, updated_at=NOW)


# ── Graph ─────────────────────────────────────────────────────────────────────

class TestStageGraph:
    def test_forward_edges(self):
        assert wf.is_valid_transition(LeadStage.NEW, LeadStage.CONTACTED)
        assert wf.is_valid_transition(LeadStage.OPPORTUNITY, LeadStage.CUSTOMER)

    def test_lost_reachable_from_non_terminal(self):
        for stage in (LeadStage.NEW, LeadStage.CONTACTED, LeadStage.QUALIFIED, LeadStage.OPPORTUNITY):
            assert wf.is_valid_transition(stage, LeadStage.LOST)

    def test_no_skipping_or_reversing(self):
        assert not wf.is_valid_transition(LeadStage.NEW, LeadStage.QUALIFIED)
        assert not wf.is_valid_transition(LeadStage.QUALIFIED, LeadStage.CONTACTED)

    def test_terminal_stages_have_no_exits(self):
        assert wf.allowed_targets(LeadStage.CUSTOMER) == set()
        assert wf.allowed_targets(LeadStage.LOST) == set()


# ── Transitions ───────────────────────────────────────────────────────────────

class TestTransition:
    def test_records_history(self):
        workflow = wf.transition(_workflow(), LeadStage.CONTACTED, performed_by="rep-001", now=NOW)
        assert workflow.current_stage == LeadStage.CONTACTED
        assert workflow.previous_stage == LeadStage.NEW
        [hop] = workflow.stage_history
        assert (hop.from_stage, hop.to_stage, hop.performed_by) == (LeadStage.NEW, LeadStage.CONTACTED, "rep-001")

    def test_illegal_edge_raises(self):
        workflow = _workflow()
        with pytest.raises(InvalidInput):
            wf.transition(workflow, LeadStage.OPPORTUNITY)
        assert workflow.current_stage == LeadStage.NEW
        assert workflow.stage_history == []

    def test_manual_override_can_jump(self):
        workflow = wf.transition(_workflow(LeadStage.OPPORTUNITY), LeadStage.CONTACTED, manual=True, now=NOW)
        assert workflow.current_stage == LeadStage.CONTACTED
        assert workflow.stage_history[-1].reason == "Manual override"

    def test_same_stage_is_noop(self):
        workflow = wf.transition(_workflow(LeadStage.QUALIFIED), LeadStage.QUALIFIED)
        assert workflow.stage_history == []


class TestAdvanceTo:
    def test_every_hop_is_recorded(self):
        workflow = wf.advance_to(_workflow(), LeadStage.OPPORTUNITY, now=NOW)
        hops = [(t.from_stage, t.to_stage) for t in workflow.stage_history]
        assert hops == [
            (LeadStage.NEW, LeadStage.CONTACTED),
            (LeadStage.CONTACTED, LeadStage.QUALIFIED),
            (LeadStage.QUALIFIED, LeadStage.OPPORTUNITY),
        ]

    def test_backwards_target_is_ignored(self):
        workflow = wf.advance_to(_workflow(LeadStage.OPPORTUNITY), LeadStage.CONTACTED)
        assert workflow.current_stage == LeadStage.OPPORTUNITY
        assert workflow.stage_history == []

    def test_terminal_is_sticky(self):
        workflow = wf.advance_to(_workflow(LeadStage.CUSTOMER), LeadStage.LOST)
        assert workflow.current_stage == LeadStage.CUSTOMER

    def test_lost_is_a_single_hop(self):
        workflow = wf.advance_to(_workflow(LeadStage.CONTACTED), LeadStage.LOST, now=NOW)
        assert [t.to_stage for t in workflow.stage_history] == [LeadStage.LOST]


# ── Lifecycle ─────────────────────────────────────────────────────────────────

class TestLifecycle:
    def test_start_workflow_walks_to_inferred_stage(self, lead):
        workflow = wf.start_workflow(lead, qualify(lead), now=NOW)
        assert workflow.current_stage == LeadStage.QUALIFIED
        assert len(workflow.stage_history) == 2
        assert workflow.qualification_score == 39

    def test_next_actions_include_missing_bant(self):
        workflow = _workflow(LeadStage.CONTACTED)
        workflow.criteria = QualificationCriteria(has_authority=True)
        actions = wf.next_actions(workflow)
        assert "Discuss budget requirements" in actions
        assert "Establish implementation timeline" in actions
        assert "Identify and engage decision makers" not in actions
        assert actions[0] == "Conduct needs assessment"

    def test_requalification_keeps_true_flags(self, lead):
        workflow = wf.start_workflow(lead, qualify(lead, QualificationCriteria(has_budget=True)), now=NOW)
        wf.apply_qualification(workflow, qualify(lead), now=NOW)
        assert workflow.criteria.has_budget

    def test_apply_qualification_is_atomic(self, lead, monkeypatch):
        workflow = _workflow()

        def boom(_):
            raise RuntimeError("next actions failed")

        monkeypatch.setattr(wf, "next_actions", boom)
        with pytest.raises(RuntimeError):
            wf.apply_qualification(workflow, qualify(lead), now=NOW)

        assert workflow.current_stage == LeadStage.NEW
        assert workflow.stage_history == []
        assert workflow.qualification_score == 0

    def test_hot_lead_reaches_opportunity(self, hot_lead):
        workflow = wf.start_workflow(hot_lead, qualify(hot_lead), now=NOW)
        assert workflow.current_stage == LeadStage.OPPORTUNITY
        assert workflow.next_actions[0] == "Finalize proposal"

    def test_signed_up_lead_becomes_customer(self):
        lead = make_lead(signed_up=True)
        workflow = wf.start_workflow(lead, qualify(lead), now=NOW)
        assert workflow.current_stage == LeadStage.CUSTOMER
        assert workflow.current_stage.is_terminal


# ── Time in stage ─────────────────────────────────────────────────────────────

class TestDaysInStage:
    def test_current_stint_counts(self):
        workflow = wf.transition(_workflow(), LeadStage.CONTACTED, now=NOW)
        later = NOW + timedelta(days=4, hours=3)
        assert wf.days_in_stage(workflow, LeadStage.CONTACTED, now=later) == 4
        assert wf.days_in_current_stage(workflow, now=later) == 4

    def test_closed_stints_are_summed(self):
        workflow = _workflow()
        wf.transition(workflow, LeadStage.CONTACTED, now=NOW + timedelta(days=2))
        wf.transition(workflow, LeadStage.QUALIFIED, now=NOW + timedelta(days=5))
        assert wf.days_in_stage(workflow, LeadStage.NEW, now=NOW + timedelta(days=9)) == 2
        assert wf.days_in_stage(workflow, LeadStage.CONTACTED, now=NOW + timedelta(days=9)) == 3

    def test_never_entered(self):
        assert wf.days_in_stage(_workflow(), LeadStage.OPPORTUNITY, now=NOW) == 0
