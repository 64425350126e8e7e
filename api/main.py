"""
api/main.py — FastAPI application entry point.

Run with:
    uvicorn api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from api.dependencies import get_lead_engine
from api.endpoints.engine_routes import router as engine_router
from api.endpoints.lead_routes import router as lead_router
from api.endpoints.territory_routes import router as territory_router
from lead_engine.config import settings
from lead_engine.db.session import engine
from lead_engine.services.lead_service import LeadEngine

logger = logging.getLogger(__name__)


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown logic."""
    # Verify DB is reachable on startup
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection verified.")
    yield
    logger.info("Application shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Lead Engine",
    description=(
        "Lead qualification, close-probability scoring, territory assignment and "
        "follow-up recommendations, optionally enriched by an AI completion service."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(engine_router, prefix="/engine", tags=["Engine"])
app.include_router(lead_router, prefix="/leads", tags=["Leads"])
app.include_router(territory_router, prefix="/territories", tags=["Territories"])


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/health", tags=["System"])
def health_check(lead_engine: LeadEngine = Depends(get_lead_engine)):
    """Returns service liveness status."""
    return {
        "status": "ok",
        "service": "lead-engine",
        "ai_enabled": lead_engine.ai_available,
    }


@app.get("/", tags=["System"])
def root():
    return {
        "message": "Lead Engine is running.",
        "docs": "/docs",
        "product": settings.product_description[:80] + "...",
    }
