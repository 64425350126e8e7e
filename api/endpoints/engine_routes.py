"""
api/endpoints/engine_routes.py — The engine operations over HTTP.

POST /engine/qualify          — Score and stage a lead
POST /engine/probability      — Close probability and expected days to close
POST /engine/deal-probability — Stage-based probability breakdown with insights
POST /engine/assign           — Pick a sales rep for a territory
POST /engine/recommend        — Ranked follow-up recommendations

Every call is side-effect free; the caller persists what it wants to keep.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_lead_engine, to_http_error
from api.schemas import (
    AssignmentOut,
    AssignRequest,
    CriteriaOut,
    DealProbabilityRequest,
    DealProbabilityResponse,
    HistoryOut,
    ProbabilityRequest,
    ProbabilityResponse,
    QualifyRequest,
    QualifyResponse,
    RecommendationOut,
    RecommendRequest,
    RecommendResponse,
    ScoreFactorOut,
)
from lead_engine.exceptions import LeadEngineError
from lead_engine.services.lead_service import LeadEngine
from lead_engine.services.probability import DealFactors, enhanced_score
from lead_engine.services.qualification import days_to_follow_up
from lead_engine.services.workflow import next_actions

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/qualify", response_model=QualifyResponse, summary="Qualify a lead")
def qualify_lead(payload: QualifyRequest, engine: LeadEngine = Depends(get_lead_engine)):
    """
    Complete the BANT criteria, score the lead 0–100 and infer its stage.
    A supplied workflow keeps the stage from moving backwards.
    """
    try:
        lead = payload.lead.to_record()
        criteria = payload.criteria.to_criteria() if payload.criteria else None
        current = payload.workflow.to_workflow(lead.id) if payload.workflow else None
        result = engine.qualify(lead, criteria, current)
        workflow = engine.qualify_workflow(lead, criteria, current, result=result)
    except LeadEngineError as e:
        raise to_http_error(e) from e

    return QualifyResponse(
        criteria=CriteriaOut.from_criteria(result.criteria),
        score=result.score,
        stage=workflow.current_stage,
        temperature=result.temperature.value,
        days_to_follow_up=days_to_follow_up(result.score),
        factors=[ScoreFactorOut(name=f.name, impact=f.impact, value=f.value) for f in result.factors],
        next_actions=next_actions(workflow),
    )


@router.post("/probability", response_model=ProbabilityResponse, summary="Estimate close probability")
def estimate_probability(payload: ProbabilityRequest, engine: LeadEngine = Depends(get_lead_engine)):
    """Blend the qualification score with historical conversion for similar leads."""
    try:
        lead = payload.lead.to_record()
        if payload.workflow is not None:
            workflow = payload.workflow.to_workflow(lead.id)
        else:
            workflow = engine.qualify_workflow(lead)
        estimate = engine.estimate_probability(workflow, lead)
    except LeadEngineError as e:
        raise to_http_error(e) from e

    return ProbabilityResponse(
        probability=estimate.probability,
        eta_days=estimate.eta_days,
        score_multiplier=estimate.score_multiplier,
        enhanced_score=enhanced_score(workflow.qualification_score, estimate),
        history=HistoryOut(
            similar_leads_count=estimate.history.similar_leads_count,
            conversion_rate=estimate.history.conversion_rate,
            avg_days_to_close=estimate.history.avg_days_to_close,
        ),
    )


@router.post("/deal-probability", response_model=DealProbabilityResponse, summary="Explain deal probability")
def explain_deal_probability(payload: DealProbabilityRequest, engine: LeadEngine = Depends(get_lead_engine)):
    """Stage-based probability with the bonuses, penalties and insights behind it."""
    try:
        lead = payload.lead.to_record()
        if payload.workflow is not None:
            workflow = payload.workflow.to_workflow(lead.id)
        else:
            workflow = engine.qualify_workflow(lead)
        factors = DealFactors(
            previous_customer=payload.previous_customer,
            referral_source=payload.referral_source,
        )
        breakdown = engine.deal_probability(workflow, lead, factors)
    except LeadEngineError as e:
        raise to_http_error(e) from e

    return DealProbabilityResponse(
        probability=breakdown.probability,
        label=breakdown.label,
        confidence=breakdown.confidence.value,
        base_score=breakdown.base_score,
        quality_bonus=breakdown.quality_bonus,
        engagement_bonus=breakdown.engagement_bonus,
        business_bonus=breakdown.business_bonus,
        historical_bonus=breakdown.historical_bonus,
        penalties=breakdown.penalties,
        insights=breakdown.insights,
    )


@router.post("/assign", response_model=AssignmentOut, summary="Assign a sales rep")
def assign_rep(payload: AssignRequest, engine: LeadEngine = Depends(get_lead_engine)):
    """
    Auto mode ranks reps serving the territory; manual mode validates the chosen rep.
    A manual pick of a rep at capacity returns 409 unless force is set.
    """
    try:
        reps = [rep.to_rep() for rep in payload.reps] if payload.reps is not None else None
        result = engine.assign(
            payload.territory,
            reps,
            mode=payload.mode,
            rep_id=payload.rep_id,
            force=payload.force,
            urgency=payload.urgency,
            deal_size=payload.deal_size,
            allow_nearby=payload.allow_nearby,
        )
    except LeadEngineError as e:
        raise to_http_error(e) from e

    return AssignmentOut(
        rep_id=result.rep_id,
        overflow=result.overflow,
        reason=result.reason.value,
        territory=result.territory,
        load_percentage=result.load_percentage,
        alternative_rep_ids=result.alternative_rep_ids,
        nearby_territories=result.nearby_territories,
    )


@router.post("/recommend", response_model=RecommendResponse, summary="Recommend follow-ups")
async def recommend(payload: RecommendRequest, engine: LeadEngine = Depends(get_lead_engine)):
    """Rule-based follow-ups, merged with AI suggestions when the AI is configured."""
    try:
        lead = payload.lead.to_record()
        if payload.workflow is not None:
            workflow = payload.workflow.to_workflow(lead.id)
        else:
            workflow = engine.qualify_workflow(lead)
    except LeadEngineError as e:
        raise to_http_error(e) from e

    recommendations = await engine.recommend(workflow, lead)
    if recommendations is None:
        logger.info("Recommendation request for lead %s superseded by a newer one.", lead.id)
        return RecommendResponse(recommendations=[], ai_enabled=engine.ai_available, superseded=True)

    return RecommendResponse(
        recommendations=[RecommendationOut(**rec.to_dict()) for rec in recommendations],
        ai_enabled=engine.ai_available,
    )
