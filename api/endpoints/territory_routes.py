"""
api/endpoints/territory_routes.py — Rep workload and coverage per territory.

GET    /territories/reassignments       — Helpers for uncovered or overloaded territories
GET    /territories/{territory}/roster  — Reps serving a territory with derived load
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_lead_engine, to_http_error
from api.schemas import ReassignmentOut, RosterEntryOut
from lead_engine.exceptions import LeadEngineError
from lead_engine.services.assignment import describe_workload
from lead_engine.services.lead_service import LeadEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/reassignments", response_model=list[ReassignmentOut], summary="Territory cover suggestions")
def territory_reassignments(
    territory: Optional[list[str]] = Query(default=None, description="Territories to check; all by default"),
    engine: LeadEngine = Depends(get_lead_engine),
):
    """
    Territories nobody serves, or whose reps carry too many open leads, with
    up to two reps from the same region who could take on the work.
    """
    try:
        suggestions = engine.reassignment_suggestions(territory)
    except LeadEngineError as e:
        raise to_http_error(e) from e
    return [
        ReassignmentOut(territory=name, suggested_rep_ids=rep_ids)
        for name, rep_ids in suggestions.items()
    ]


@router.get("/{territory}/roster", response_model=list[RosterEntryOut], summary="Territory roster")
def territory_roster(territory: str, engine: LeadEngine = Depends(get_lead_engine)):
    """
    Reps serving the territory, least loaded first. Load is counted from the
    territory's open leads at request time.
    """
    try:
        reps = [rep for rep in engine.roster(territory) if rep.serves(territory)]
    except LeadEngineError as e:
        raise to_http_error(e) from e

    workloads = sorted(
        (describe_workload(rep, engine.balancer) for rep in reps),
        key=lambda w: (w.load_percentage, w.rep.id),
    )
    return [
        RosterEntryOut(
            rep_id=w.rep.id,
            name=w.rep.name,
            current_load=w.rep.current_load,
            max_capacity=w.rep.max_capacity,
            load_percentage=w.load_percentage,
            availability=w.availability.value,
            status=w.status.value,
            conversion_rate=w.rep.conversion_rate,
        )
        for w in workloads
    ]
