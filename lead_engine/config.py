"""
lead_engine/config.py — Central configuration loaded from environment variables.
All modules import settings from here; never read os.environ directly elsewhere.

Engine components take explicit config objects (AIConfig, ScoringWeights, ...)
built from these settings, so tests can construct them without touching env.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── LLM ──────────────────────────────────────────────────────────────────
    openrouter_api_key: Optional[str] = Field(
        default=None,
        description="OpenRouter API key. Leave unset to run on rules only.",
    )
    openrouter_model: str = Field(
        default="google/gemini-flash-1.5",
        description="OpenRouter model identifier",
    )
    enable_ai_features: bool = Field(
        default=True,
        description="Feature flag for every AI-backed enhancement",
    )
    ai_request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each completion call",
    )
    max_ai_requests_per_minute: int = Field(
        default=10,
        gt=0,
        description="Local budget for completion calls (sliding 60s window)",
    )

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///./leads.db",
        description="SQLAlchemy connection URI for the lead store",
    )

    # ── Scoring ───────────────────────────────────────────────────────────────
    interest_scale: int = Field(
        default=5,
        ge=2,
        le=10,
        description="Top of the interest-level scale used by this deployment (5 or 10)",
    )

    # ── Product Context ───────────────────────────────────────────────────────
    product_description: str = Field(
        default="Bitcoin payment processing for small and mid-sized Caribbean businesses.",
        description="What the sales team is selling; fed into AI prompts",
    )


# Singleton — import this everywhere
settings = Settings()
