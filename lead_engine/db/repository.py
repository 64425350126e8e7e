"""
lead_engine/db/repository.py — All database read/write operations.

Business logic should never write raw SQL or ORM queries directly —
everything goes through this module. This keeps DB logic centralized
and easy to test/mock.

SqlLeadStore at the bottom adapts these functions to the storage interface
the engine consumes (fetch_lead_record, fetch_open_leads_by_rep_and_territory,
fetch_historical_outcomes, list_rep_profiles, list_open_lead_assignments).
"""

import json
import logging
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from lead_engine.db.models import Lead, SalesRepProfile
from lead_engine.models import (
    DEFAULT_HISTORY,
    HistoricalOutcomes,
    LeadRecord,
    LeadStage,
    SalesRep,
)

logger = logging.getLogger(__name__)

OPEN_STAGES = [stage for stage in LeadStage if not stage.is_terminal]
CLOSED_STAGES = [LeadStage.CUSTOMER, LeadStage.LOST]


# ── Conversions ───────────────────────────────────────────────────────────────

def to_lead_record(row: Lead) -> LeadRecord:
    return LeadRecord(
        id=row.id,
        owner_name=row.owner_name,
        phone_number=row.phone_number,
        email=row.email,
        interest_level=row.interest_level,
        specific_needs=row.specific_needs,
        pain_points=tuple(row.pain_point_list),
        territory=row.territory,
        business_type=row.business_type,
        monthly_revenue=row.monthly_revenue,
        number_of_employees=row.number_of_employees,
        decision_makers=row.decision_makers,
        package_seen=row.package_seen,
        signed_up=row.signed_up,
        created_at=row.created_at,
    )


def to_sales_rep(row: SalesRepProfile, current_load: int = 0) -> SalesRep:
    return SalesRep(
        id=row.id,
        name=row.name,
        territories=frozenset(row.territory_list),
        max_capacity=row.max_capacity,
        current_load=current_load,
        conversion_rate=row.conversion_rate,
        avg_days_to_close=row.avg_days_to_close,
        avg_deal_size=row.avg_deal_size or 0.0,
    )


# ── Sales reps ────────────────────────────────────────────────────────────────

def upsert_rep(
    db: Session,
    rep_id: str,
    name: str,
    territories: list[str],
    max_capacity: int,
    conversion_rate: float = 0.0,
    avg_days_to_close: float = 30.0,
    avg_deal_size: float = 0.0,
) -> SalesRepProfile:
    """Create a rep profile or refresh an existing one."""
    profile = db.get(SalesRepProfile, rep_id)
    if profile is None:
        profile = SalesRepProfile(id=rep_id)
        db.add(profile)
    profile.name = name
    profile.territories = json.dumps(sorted(territories))
    profile.max_capacity = max_capacity
    profile.conversion_rate = conversion_rate
    profile.avg_days_to_close = avg_days_to_close
    profile.avg_deal_size = avg_deal_size
    db.flush()
    logger.debug("Upserted rep %s (%s)", rep_id, ", ".join(territories))
    return profile


def list_rep_profiles(db: Session) -> list[SalesRep]:
    """Active rep profiles with current_load left at 0 (see build_roster)."""
    rows = (
        db.query(SalesRepProfile)
        .filter(SalesRepProfile.is_active == True)  # noqa: E712
        .order_by(SalesRepProfile.id.asc())
        .all()
    )
    return [to_sales_rep(row) for row in rows]


# ── Leads ─────────────────────────────────────────────────────────────────────

def create_lead(
    db: Session,
    record: LeadRecord,
    stage: LeadStage = LeadStage.NEW,
    assigned_rep_id: Optional[str] = None,
    qualification_score: Optional[int] = None,
) -> Lead:
    """Persist an intake submission."""
    lead = Lead(
        id=record.id,
        owner_name=record.owner_name,
        phone_number=record.phone_number,
        email=record.email,
        interest_level=record.interest_level,
        specific_needs=record.specific_needs,
        pain_points=json.dumps(list(record.pain_points)),
        territory=record.territory,
        business_type=record.business_type,
        monthly_revenue=record.monthly_revenue,
        number_of_employees=record.number_of_employees,
        decision_makers=record.decision_makers,
        package_seen=record.package_seen,
        signed_up=record.signed_up,
        stage=stage,
        qualification_score=qualification_score,
        assigned_rep_id=assigned_rep_id,
        created_at=record.created_at.replace(tzinfo=None),
    )
    db.add(lead)
    db.flush()
    logger.info("Lead created: %s (%s, stage=%s)", record.id, record.owner_name, stage.value)
    return lead


def get_lead(db: Session, lead_id: str) -> Optional[Lead]:
    return db.get(Lead, lead_id)


def fetch_lead_record(db: Session, lead_id: str) -> Optional[LeadRecord]:
    row = get_lead(db, lead_id)
    return to_lead_record(row) if row is not None else None


def update_lead_stage(
    db: Session,
    lead_id: str,
    stage: LeadStage,
    qualification_score: Optional[int] = None,
    closed_at: Optional[datetime] = None,
) -> None:
    """Record a stage change; entering customer/lost stamps closed_at."""
    update_data: dict = {"stage": stage}
    if qualification_score is not None:
        update_data["qualification_score"] = qualification_score
    if stage.is_terminal:
        update_data["closed_at"] = closed_at or datetime.utcnow()
        update_data["signed_up"] = stage == LeadStage.CUSTOMER
    db.query(Lead).filter(Lead.id == lead_id).update(update_data)
    logger.debug("Lead %s stage → %s", lead_id, stage.value)


def assign_lead(db: Session, lead_id: str, rep_id: Optional[str]) -> None:
    db.query(Lead).filter(Lead.id == lead_id).update({"assigned_rep_id": rep_id})
    logger.debug("Lead %s assigned → %s", lead_id, rep_id)


def fetch_open_leads_by_rep_and_territory(
    db: Session, rep_id: str, territory: Optional[str] = None
) -> list[LeadRecord]:
    """Open (non-terminal) leads owned by a rep, optionally limited to one territory."""
    query = db.query(Lead).filter(Lead.assigned_rep_id == rep_id, Lead.stage.in_(OPEN_STAGES))
    if territory is not None:
        query = query.filter(Lead.territory == territory)
    return [to_lead_record(row) for row in query.order_by(Lead.created_at.asc()).all()]


def list_open_lead_assignments(db: Session) -> list[tuple[str, Optional[str]]]:
    """(assigned_rep_id, territory) for every open, assigned lead."""
    rows = (
        db.query(Lead.assigned_rep_id, Lead.territory)
        .filter(Lead.assigned_rep_id.isnot(None), Lead.stage.in_(OPEN_STAGES))
        .all()
    )
    return [(rep_id, territory) for rep_id, territory in rows]


def fetch_historical_outcomes(db: Session, interest_range: tuple[int, int]) -> HistoricalOutcomes:
    """
    Aggregate closed leads whose interest level falls inside interest_range.

    An empty result set yields similar_leads_count=0 with the default rates;
    the engine treats that as "no history".
    """
    low, high = interest_range
    rows = (
        db.query(Lead)
        .filter(
            Lead.stage.in_(CLOSED_STAGES),
            Lead.interest_level >= low,
            Lead.interest_level <= high,
        )
        .all()
    )
    if not rows:
        return DEFAULT_HISTORY

    won = [row for row in rows if row.stage == LeadStage.CUSTOMER]
    close_days = [
        (row.closed_at - row.created_at).total_seconds() / 86_400
        for row in won
        if row.closed_at is not None and row.created_at is not None
    ]
    return HistoricalOutcomes(
        similar_leads_count=len(rows),
        conversion_rate=len(won) / len(rows),
        avg_days_to_close=(
            sum(close_days) / len(close_days) if close_days else DEFAULT_HISTORY.avg_days_to_close
        ),
    )


# ── Store adapter ─────────────────────────────────────────────────────────────

class SqlLeadStore:
    """
    Storage collaborator backed by SQLAlchemy sessions.

    Args:
        session_factory: Zero-arg callable returning a session context manager,
                         e.g. lead_engine.db.session.get_session.
    """

    def __init__(self, session_factory: Callable[[], AbstractContextManager[Session]]):
        self._session_factory = session_factory

    def fetch_lead_record(self, lead_id: str) -> Optional[LeadRecord]:
        with self._session_factory() as db:
            return fetch_lead_record(db, lead_id)

    def fetch_open_leads_by_rep_and_territory(
        self, rep_id: str, territory: Optional[str] = None
    ) -> list[LeadRecord]:
        with self._session_factory() as db:
            return fetch_open_leads_by_rep_and_territory(db, rep_id, territory)

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    def fetch_historical_outcomes(self, interest_range: tuple[int, int]) -> HistoricalOutcomes:
        with self._session_factory() as db:
            return fetch_historical_outcomes(db, interest_range)

    def list_rep_profiles(self) -> list[SalesRep]:
        with self._session_factory() as db:
            return list_rep_profiles(db)

    def list_open_lead_assignments(self) -> list[tuple[str, Optional[str]]]:
        with self._session_factory() as db:
            return list_open_lead_assignments(db)
