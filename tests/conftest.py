"""
tests/conftest.py — Shared pytest configuration and fixtures.

Sets dummy environment variables BEFORE any lead_engine module is imported,
so the module-level settings and DB engine never point at real services.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# ── Set dummy env vars before any lead_engine module is imported ──────────────
# This runs at collection time, before tests execute.
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")
os.environ.setdefault("OPENROUTER_MODEL", "test-model")
os.environ.setdefault("ENABLE_AI_FEATURES", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PRODUCT_DESCRIPTION", "A test product for unit tests.")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lead_engine.db.models import Base
from lead_engine.models import LeadRecord, SalesRep

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Domain factories ──────────────────────────────────────────────────────────

def make_lead(**overrides) -> LeadRecord:
    """A mid-quality lead; override any field."""
    data = {
        "id": "lead-1",
        "owner_name": "Keisha Walters",
        "phone_number": "876-555-0101",
        "email": None,
        "interest_level": 3,
        "specific_needs": None,
        "pain_points": (),
        "territory": "Kingston",
        "business_type": "Restaurant",
        "monthly_revenue": "10k-50k",
        "number_of_employees": "6-20",
        "created_at": NOW - timedelta(days=10),
    }
    data.update(overrides)
    data["pain_points"] = tuple(data["pain_points"])
    return LeadRecord(**data)


def make_rep(rep_id: str, load: int, capacity: int = 20, territories=("Kingston",), conversion: float = 0.3) -> SalesRep:
    return SalesRep(
        id=rep_id,
        name=f"Rep {rep_id}",
        territories=frozenset(territories),
        max_capacity=capacity,
        current_load=load,
        conversion_rate=conversion,
    )


@pytest.fixture
def lead() -> LeadRecord:
    return make_lead()


@pytest.fixture
def hot_lead() -> LeadRecord:
    return make_lead(
        id="lead-hot",
        owner_name="Devon Clarke",
        email="devon@example.com",
        interest_level=5,
        specific_needs="Accept Bitcoin at three locations and settle to JMD daily without manual reconciliation.",
        pain_points=("High card fees", "Slow settlement", "Chargebacks"),
        monthly_revenue="250k+",
        number_of_employees="21-50",
        decision_makers="Devon Clarke, Tanya Clarke",
        package_seen=True,
    )


# ── In-memory DB Fixture ──────────────────────────────────────────────────────

@pytest.fixture
def db_engine():
    """
    Fresh in-memory SQLite engine per test.

    StaticPool keeps a single connection, so every session (including the
    ones SqlLeadStore opens) sees the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    """Provide a session on the shared in-memory database."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
