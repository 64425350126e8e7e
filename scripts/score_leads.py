"""
scripts/score_leads.py — CLI to score open leads and optionally assign them.

Steps:
  1. Load open leads from the DB (optionally one territory)
  2. Qualify each lead and estimate its close probability
  3. With --assign, auto-assign unassigned leads to the best-placed rep
  4. With --save, persist stage, score and assignment back to the DB

Usage:
    python scripts/score_leads.py [--territory NAME] [--limit N] [--assign] [--save]
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ── Imports ───────────────────────────────────────────────────────────────────

from lead_engine.config import settings
from lead_engine.db.models import Lead
from lead_engine.db.repository import (
    OPEN_STAGES,
    SqlLeadStore,
    assign_lead,
    to_lead_record,
    update_lead_stage,
)
from lead_engine.db.session import get_session
from lead_engine.exceptions import LeadEngineError
from lead_engine.models import LeadWorkflow
from lead_engine.services.lead_service import LeadEngine


# ── Main pipeline ─────────────────────────────────────────────────────────────

def score_leads(territory: str | None, limit: int, assign: bool, save: bool) -> dict:
    """
    Score open leads, and assign / persist when asked.

    Returns a summary dict: {scored, assigned, overflow, unassignable, failed}.
    """
    engine = LeadEngine.from_settings(settings, store=SqlLeadStore(get_session))
    summary = {"scored": 0, "assigned": 0, "overflow": 0, "unassignable": 0, "failed": 0}

    with get_session() as db:
        query = db.query(Lead).filter(Lead.stage.in_(OPEN_STAGES))
        if territory:
            query = query.filter(Lead.territory == territory)
        leads = query.order_by(Lead.created_at.asc()).limit(limit).all()

        if not leads:
            logger.info("No open leads to score.")
            return summary

        for row in leads:
            record = to_lead_record(row)
            try:
                # Start from the stored stage so a re-score never moves it backwards.
                stored = LeadWorkflow(
                    lead_id=record.id,
                    current_stage=row.stage,
                    qualification_score=row.qualification_score or 0,
                )
                result = engine.qualify(record, workflow=stored)
                workflow = engine.qualify_workflow(record, workflow=stored, result=result)
                estimate = engine.estimate_probability(workflow, record)
            except LeadEngineError as e:
                logger.error("Could not score lead %s: %s", record.id, e)
                summary["failed"] += 1
                continue

            summary["scored"] += 1
            print(
                f"  {record.id:<14} {record.owner_name[:24]:<24} "
                f"score={result.score:>3}  stage={workflow.current_stage.value:<11} "
                f"p={estimate.probability:.2f}  eta={estimate.eta_days}d"
            )

            if save:
                update_lead_stage(db, record.id, workflow.current_stage, qualification_score=result.score)
                db.commit()

            if assign and row.assigned_rep_id is None and record.territory:
                # Roster is rebuilt per lead, so saved assignments count toward load.
                assignment = engine.assign(record.territory)
                if not assignment.assigned:
                    summary["unassignable"] += 1
                    logger.warning(
                        "No rep serves %s; nearby territories: %s",
                        record.territory, ", ".join(assignment.nearby_territories) or "none",
                    )
                    continue
                summary["assigned"] += 1
                if assignment.overflow:
                    summary["overflow"] += 1
                print(f"    → assigned to {assignment.rep_id}"
                      f"{' (OVERFLOW)' if assignment.overflow else ''}")
                if save:
                    assign_lead(db, record.id, assignment.rep_id)
                    db.commit()

    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Score open leads and optionally assign them.")
    parser.add_argument("--territory", default=None, help="Only score leads in this territory")
    parser.add_argument("--limit", type=int, default=100, help="Max leads to score (default: 100)")
    parser.add_argument("--assign", action="store_true", help="Auto-assign unassigned leads")
    parser.add_argument("--save", action="store_true", help="Persist stage, score and assignment")
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("  📊 Lead Engine — Scoring Run")
    print("=" * 60)
    print(f"  Territory  : {args.territory or 'all'}")
    print(f"  Limit      : {args.limit}")
    print(f"  Assign     : {args.assign}")
    print(f"  Save       : {args.save}")
    print(f"  AI enabled : {bool(settings.openrouter_api_key) and settings.enable_ai_features}")
    print("=" * 60 + "\n")

    summary = score_leads(args.territory, args.limit, args.assign, args.save)

    print("\n" + "=" * 60)
    print("  ✅ Scoring Complete")
    print("=" * 60)
    for key, value in summary.items():
        print(f"  {key:<13}: {value}")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
