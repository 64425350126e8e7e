"""
lead_engine/services/workflow.py — Stage lifecycle for LeadWorkflow aggregates.

Stage graph:
    new → contacted → qualified → opportunity → customer
    any non-terminal stage → lost

Automatic progression walks the graph one edge at a time (every hop lands in
stage_history). Only an explicit manual override may jump across stages or
move a lead backwards.
"""

import logging
from dataclasses import fields, replace
from datetime import datetime
from typing import Optional

from lead_engine.exceptions import InvalidInput
from lead_engine.models import (
    STAGE_ORDER,
    LeadRecord,
    LeadStage,
    LeadWorkflow,
    StageTransition,
    utcnow,
)
from lead_engine.services.qualification import QualificationResult

logger = logging.getLogger(__name__)


STAGE_ACTIONS: dict[LeadStage, list[str]] = {
    LeadStage.NEW: [
        "Make initial contact",
        "Send introductory email",
        "Schedule discovery call",
    ],
    LeadStage.CONTACTED: [
        "Conduct needs assessment",
        "Identify decision makers",
        "Determine budget range",
        "Establish timeline",
    ],
    LeadStage.QUALIFIED: [
        "Schedule product demo",
        "Prepare custom proposal",
        "Conduct stakeholder meeting",
        "Address specific pain points",
    ],
    LeadStage.OPPORTUNITY: [
        "Finalize proposal",
        "Negotiate terms",
        "Get buy-in from all stakeholders",
        "Schedule closing meeting",
    ],
    LeadStage.CUSTOMER: [
        "Send onboarding materials",
        "Schedule implementation",
        "Assign customer success manager",
        "Set up regular check-ins",
    ],
    LeadStage.LOST: [
        "Conduct loss analysis",
        "Add to nurture campaign",
        "Schedule future follow-up",
    ],
}


# ── Graph ────────────────────────────────────────────────────────────────────

def allowed_targets(stage: LeadStage) -> set[LeadStage]:
    """Stages reachable from `stage` in a single automatic step."""
    if stage.is_terminal:
        return set()
    idx = STAGE_ORDER.index(stage)
    return {STAGE_ORDER[idx + 1], LeadStage.LOST}


def is_valid_transition(from_stage: LeadStage, to_stage: LeadStage) -> bool:
    return to_stage in allowed_targets(from_stage)


def transition(
    workflow: LeadWorkflow,
    to_stage: LeadStage,
    performed_by: str = "system",
    reason: Optional[str] = None,
    manual: bool = False,
    now: Optional[datetime] = None,
) -> LeadWorkflow:
    """
    Move a workflow along a single edge and record it in stage_history.

    Raises:
        InvalidInput: If the edge is not in the stage graph and `manual` is False.
    """
    from_stage = workflow.current_stage
    if to_stage == from_stage:
        return workflow
    if not manual and not is_valid_transition(from_stage, to_stage):
        raise InvalidInput(
            f"Illegal stage transition {from_stage.value} → {to_stage.value} for lead {workflow.lead_id}.",
            details={"from": from_stage.value, "to": to_stage.value},
        )

    when = now or utcnow()
    workflow.stage_history.append(StageTransition(
        from_stage=from_stage,
        to_stage=to_stage,
        transition_date=when,
        performed_by=performed_by,
        reason=reason if reason or not manual else "Manual override",
    ))
    workflow.previous_stage = from_stage
    workflow.current_stage = to_stage
    workflow.updated_at = when
    logger.info(
        "Lead %s stage %s → %s (by %s%s)",
        workflow.lead_id, from_stage.value, to_stage.value, performed_by,
        ", manual" if manual else "",
    )
    return workflow


def advance_to(
    workflow: LeadWorkflow,
    target: LeadStage,
    performed_by: str = "system",
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LeadWorkflow:
    """
    Walk forward to `target` one edge at a time.

    A target behind the current stage, or any target from a terminal stage, is
    a no-op: the engine never reverses a stage on its own.
    """
    current = workflow.current_stage
    if current.is_terminal or target == current:
        return workflow
    if target == LeadStage.LOST:
        return transition(workflow, LeadStage.LOST, performed_by, reason, now=now)
    if STAGE_ORDER.index(target) < STAGE_ORDER.index(current):
        logger.debug(
            "Lead %s: ignoring backwards move %s → %s",
            workflow.lead_id, current.value, target.value,
        )
        return workflow

    for stage in STAGE_ORDER[STAGE_ORDER.index(current) + 1:STAGE_ORDER.index(target) + 1]:
        transition(workflow, stage, performed_by, reason, now=now)
    return workflow


# ── Workflow lifecycle ───────────────────────────────────────────────────────

def start_workflow(
    lead: LeadRecord,
    qualification: QualificationResult,
    performed_by: str = "system",
    now: Optional[datetime] = None,
) -> LeadWorkflow:
    """Create the workflow for a lead entering qualification."""
    when = now or utcnow()
    workflow = LeadWorkflow(lead_id=lead.id, created_at=when, updated_at=when)
    return apply_qualification(workflow, qualification, performed_by, now=when)


def apply_qualification(
    workflow: LeadWorkflow,
    qualification: QualificationResult,
    performed_by: str = "system",
    now: Optional[datetime] = None,
) -> LeadWorkflow:
    """
    Fold a fresh qualification result into the workflow.

    The result is built on a copy and only swapped in once every step has
    succeeded, so a failure leaves the caller's workflow untouched.
    """
    staged = replace(workflow, stage_history=list(workflow.stage_history))
    staged.qualification_score = qualification.score
    staged.criteria = workflow.criteria.merged_with(qualification.criteria)
    advance_to(
        staged, qualification.stage, performed_by,
        reason=f"Qualification score {qualification.score}", now=now,
    )
    staged.next_actions = next_actions(staged)
    staged.updated_at = now or utcnow()

    for f in fields(workflow):
        setattr(workflow, f.name, getattr(staged, f.name))
    return workflow


# ── Next actions ─────────────────────────────────────────────────────────────

def next_actions(workflow: LeadWorkflow) -> list[str]:
    """Stage checklist plus whatever BANT criteria are still missing."""
    actions = list(STAGE_ACTIONS[workflow.current_stage])
    if not workflow.criteria.has_budget:
        actions.append("Discuss budget requirements")
    if not workflow.criteria.has_authority:
        actions.append("Identify and engage decision makers")
    if not workflow.criteria.has_timeline:
        actions.append("Establish implementation timeline")
    return actions


# ── Time in stage ────────────────────────────────────────────────────────────

def days_in_stage(
    workflow: LeadWorkflow,
    stage: LeadStage,
    now: Optional[datetime] = None,
) -> int:
    """Total whole days spent in `stage`, including the current stint."""
    now = now or utcnow()
    total = 0.0
    entered: Optional[datetime] = workflow.created_at if stage == LeadStage.NEW else None

    for t in workflow.stage_history:
        if t.to_stage == stage and entered is None:
            entered = t.transition_date
        elif t.from_stage == stage and entered is not None:
            total += (t.transition_date - entered).total_seconds()
            entered = None

    if entered is not None and workflow.current_stage == stage:
        total += (now - entered).total_seconds()
    return int(total // 86_400)


def days_in_current_stage(workflow: LeadWorkflow, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    started = workflow.stage_history[-1].transition_date if workflow.stage_history else workflow.created_at
    return max(0, int((now - started).total_seconds() // 86_400))
