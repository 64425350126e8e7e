"""
api/endpoints/lead_routes.py — Read routes for stored leads.

GET    /leads              — List leads (filterable by stage)
GET    /leads/stats        — Aggregate counts by stage
GET    /leads/{id}         — Get a single lead with full detail
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.schemas import LeadOut
from lead_engine.db.models import Lead
from lead_engine.db.session import get_db
from lead_engine.models import LeadStage

logger = logging.getLogger(__name__)
router = APIRouter()


def _lead_out(lead: Lead) -> LeadOut:
    return LeadOut(
        id=lead.id,
        owner_name=lead.owner_name,
        phone_number=lead.phone_number,
        email=lead.email,
        interest_level=lead.interest_level,
        specific_needs=lead.specific_needs,
        pain_points=lead.pain_point_list,
        territory=lead.territory,
        business_type=lead.business_type,
        monthly_revenue=lead.monthly_revenue,
        number_of_employees=lead.number_of_employees,
        decision_makers=lead.decision_makers,
        package_seen=lead.package_seen,
        signed_up=lead.signed_up,
        stage=lead.stage,
        qualification_score=lead.qualification_score,
        assigned_rep_id=lead.assigned_rep_id,
        created_at=lead.created_at,
    )


@router.get("/", response_model=list[LeadOut], summary="List leads")
def list_leads(
    stage: Optional[LeadStage] = Query(
        default=None,
        description="Filter by stage. Omit to return all leads.",
    ),
    territory: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Return leads, newest first, optionally filtered by stage and territory."""
    query = db.query(Lead)
    if stage:
        query = query.filter(Lead.stage == stage)
    if territory:
        query = query.filter(Lead.territory == territory)
    return [_lead_out(lead) for lead in query.order_by(Lead.created_at.desc()).limit(limit).all()]


@router.get("/stats", summary="Lead counts by stage")
def lead_stats(db: Session = Depends(get_db)):
    """Return aggregate lead counts grouped by stage."""
    stats = {}
    for stage in LeadStage:
        stats[stage.value] = db.query(Lead).filter(Lead.stage == stage).count()
    stats["total"] = sum(stats.values())
    return stats


@router.get("/{lead_id}", response_model=LeadOut, summary="Get lead by ID")
def get_lead(lead_id: str, db: Session = Depends(get_db)):
    """Fetch a single lead by its ID."""
    lead = db.get(Lead, lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail=f"Lead {lead_id} not found.")
    return _lead_out(lead)
