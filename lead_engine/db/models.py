"""
lead_engine/db/models.py — SQLAlchemy ORM models for the local lead store.

Tables:
  - SalesRepProfile → a sales rep's capacity, territories and track record
  - Lead            → an intake-form submission and its pipeline stage

Rep load is never stored; it is counted from open leads on every read.
"""

import json
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from lead_engine.models import LeadStage


# ── Base ─────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Models ───────────────────────────────────────────────────────────────────

class SalesRepProfile(Base):
    __tablename__ = "sales_reps"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    territories = Column(Text, nullable=False, default="[]")   # JSON list stored as text
    max_capacity = Column(Integer, nullable=False, default=20)
    conversion_rate = Column(Float, nullable=False, default=0.0)
    avg_days_to_close = Column(Float, nullable=False, default=30.0)
    avg_deal_size = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    leads = relationship("Lead", back_populates="assigned_rep")

    @property
    def territory_list(self) -> list[str]:
        return json.loads(self.territories or "[]")

    def __repr__(self) -> str:
        return f"<SalesRepProfile id={self.id} name={self.name!r}>"


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(64), primary_key=True)
    owner_name = Column(String(255), nullable=False)
    phone_number = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    interest_level = Column(Integer, nullable=False, default=1)
    specific_needs = Column(Text, nullable=True)
    pain_points = Column(Text, nullable=True)                   # JSON list stored as text
    territory = Column(String(100), nullable=True)
    business_type = Column(String(255), nullable=True)
    monthly_revenue = Column(String(32), nullable=True)         # bucket label, e.g. "50k-100k"
    number_of_employees = Column(String(32), nullable=True)     # bucket label, e.g. "21-50"
    decision_makers = Column(Text, nullable=True)
    package_seen = Column(Boolean, default=False, nullable=False)
    signed_up = Column(Boolean, default=False, nullable=False)

    stage = Column(Enum(LeadStage), default=LeadStage.NEW, nullable=False)
    qualification_score = Column(Integer, nullable=True)        # 0 – 100
    assigned_rep_id = Column(String(64), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True)

    closed_at = Column(DateTime, nullable=True)                 # set when stage becomes customer/lost
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    assigned_rep = relationship("SalesRepProfile", back_populates="leads")

    @property
    def pain_point_list(self) -> list[str]:
        return json.loads(self.pain_points or "[]")

    def __repr__(self) -> str:
        return f"<Lead id={self.id} stage={self.stage} score={self.qualification_score}>"
