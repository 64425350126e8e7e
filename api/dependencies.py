"""
api/dependencies.py — Shared FastAPI dependencies.

The engine is built once per process from settings; tests swap it out with
app.dependency_overrides[get_lead_engine].
"""

from functools import lru_cache

from fastapi import HTTPException

from lead_engine.config import settings
from lead_engine.db.repository import SqlLeadStore
from lead_engine.db.session import get_session
from lead_engine.exceptions import CapacityExceeded, InvalidInput, LeadEngineError
from lead_engine.services.lead_service import LeadEngine


@lru_cache(maxsize=1)
def get_lead_engine() -> LeadEngine:
    return LeadEngine.from_settings(settings, store=SqlLeadStore(get_session))


def to_http_error(error: LeadEngineError) -> HTTPException:
    """Map an engine error onto the matching HTTP status."""
    if isinstance(error, InvalidInput):
        status_code = 422
    elif isinstance(error, CapacityExceeded):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "message": str(error), **error.details},
    )
