"""
tests/test_scripts.py — Batch scoring CLI against the in-memory database.

The script's get_session is swapped for a session scope on the shared
in-memory engine, so both the script and its SqlLeadStore see the test data.
"""

from contextlib import contextmanager

import pytest

import scripts.score_leads as score_leads_script
from conftest import make_lead
from lead_engine.db.repository import create_lead, get_lead, upsert_rep
from lead_engine.models import LeadStage


@pytest.fixture
def script_db(session_factory, monkeypatch):
    @contextmanager
    def session_scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    monkeypatch.setattr(score_leads_script, "get_session", session_scope)


# ── score_leads ───────────────────────────────────────────────────────────────

class TestScoreLeads:
    def test_save_never_moves_stage_backwards(self, db, script_db):
        create_lead(db, make_lead(id="p1"), stage=LeadStage.OPPORTUNITY)
        db.commit()

        summary = score_leads_script.score_leads(None, 10, assign=False, save=True)

        db.expire_all()
        row = get_lead(db, "p1")
        assert summary["scored"] == 1
        assert row.stage == LeadStage.OPPORTUNITY
        assert row.qualification_score == 39

    def test_save_advances_stage_the_lead_supports(self, db, script_db):
        create_lead(db, make_lead(id="n1"), stage=LeadStage.NEW)
        db.commit()

        score_leads_script.score_leads(None, 10, assign=False, save=True)

        db.expire_all()
        assert get_lead(db, "n1").stage == LeadStage.QUALIFIED

    def test_dry_run_leaves_rows_alone(self, db, script_db):
        create_lead(db, make_lead(id="n1"), stage=LeadStage.NEW)
        db.commit()

        score_leads_script.score_leads(None, 10, assign=False, save=False)

        db.expire_all()
        row = get_lead(db, "n1")
        assert row.stage == LeadStage.NEW
        assert row.qualification_score is None

    def test_assign_and_save(self, db, script_db):
        upsert_rep(db, "rep-001", "Andre Campbell", ["Kingston"], 20, 0.32, 21)
        create_lead(db, make_lead(id="n1"))
        db.commit()

        summary = score_leads_script.score_leads("Kingston", 10, assign=True, save=True)

        db.expire_all()
        assert summary["assigned"] == 1
        assert get_lead(db, "n1").assigned_rep_id == "rep-001"

    def test_no_open_leads(self, db, script_db):
        create_lead(db, make_lead(id="won"), stage=LeadStage.CUSTOMER)
        db.commit()
        assert score_leads_script.score_leads(None, 10, assign=False, save=True)["scored"] == 0
