"""
lead_engine/ai_engine/adapter.py — Best-effort AI augmentation over LangChain chains.

Public surface (all async, all return None / [] instead of raising):
  enhance_lead_analysis(lead, current_score, history)  → LeadAnalysis | None
  generate_follow_up_strategy(lead, stage)             → list[str] | None
  suggest_follow_ups(lead, stage)                      → list[FollowUpRecommendation]
  generate_email_template(lead, template_type)         → str | None
  generate_sales_insights(summary)                     → list[str] | None

The adapter is disabled when no API key is configured or the feature flag is
off; a disabled adapter never touches the network. Timeouts, transport errors,
local rate limiting and unusable responses are logged and absorbed here.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate

from lead_engine.ai_engine.classifier import classify_strategies
from lead_engine.ai_engine.prompt_templates import (
    EMAIL_TEMPLATE_PROMPT,
    FOLLOW_UP_STRATEGY_PROMPT,
    LEAD_ANALYSIS_PROMPT,
    SALES_INSIGHTS_PROMPT,
)
from lead_engine.ai_engine.rate_limiter import RateLimiter
from lead_engine.ai_engine.utils import (
    build_openrouter_llm,
    parse_json_safely,
    parse_text_list,
    truncate_for_context,
)
from lead_engine.exceptions import ExternalServiceUnavailable
from lead_engine.models import (
    DEFAULT_HISTORY,
    FollowUpRecommendation,
    HistoricalOutcomes,
    LeadRecord,
    LeadStage,
)

logger = logging.getLogger(__name__)

NEUTRAL_CONFIDENCE = 50
STRATEGY_LIMIT = 5
INSIGHT_LIMIT = 4
EMAIL_TEMPLATE_TYPES = ("introduction", "follow-up", "demo-invite", "proposal")

FALLBACK_ANALYSIS = "AI analysis temporarily unavailable"
FALLBACK_RECOMMENDATIONS = ["Follow standard lead qualification process"]
FALLBACK_INSIGHTS = ["Contact lead within 24 hours"]

DEFAULT_PRODUCT_DESCRIPTION = (
    "Bitcoin payment processing for small and mid-sized Caribbean businesses."
)


# ── Configuration ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AIConfig:
    api_key: Optional[str] = None
    model: str = "google/gemini-flash-1.5"
    enabled_flag: bool = True
    timeout_seconds: float = 30.0
    max_requests_per_minute: int = 10
    base_url: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key) and self.enabled_flag

    @classmethod
    def from_settings(cls, settings: Any) -> "AIConfig":
        return cls(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            enabled_flag=settings.enable_ai_features,
            timeout_seconds=settings.ai_request_timeout_seconds,
            max_requests_per_minute=settings.max_ai_requests_per_minute,
        )


# ── Output dataclasses ────────────────────────────────────────────────────────

@dataclass
class LeadAnalysis:
    analysis: str
    recommendations: list[str]
    confidence: int                 # 0 – 100, as reported by the model
    insights: list[str]
    raw_response: str = ""          # original LLM text (for debugging)
    parsed: bool = True             # False when the defaults were used


@dataclass
class SalesSummary:
    """Pipeline aggregate fed to the sales-insights prompt."""
    total_submissions: int
    conversion_rate: float          # 0 – 1
    pipeline_size: int
    territory: Optional[str] = None
    trend: str = "insufficient data"
    average_interest: float = 0.0
    top_business_types: list[str] = field(default_factory=list)
    common_pain_points: list[str] = field(default_factory=list)


# ── Lead context helpers ──────────────────────────────────────────────────────

def input_completeness(lead: LeadRecord) -> int:
    """Percentage of the ten expected intake fields that are populated."""
    populated = [
        bool(lead.owner_name and lead.owner_name.strip()),
        lead.has_phone,
        lead.has_email,
        bool(lead.interest_level),
        bool(lead.specific_needs and lead.specific_needs.strip()),
        bool(lead.territory),
        bool(lead.business_type),
        bool(lead.monthly_revenue),
        bool(lead.number_of_employees),
        bool(lead.distinct_pain_points),
    ]
    return round(sum(populated) / len(populated) * 100)


def lead_prompt_context(lead: LeadRecord, interest_scale: int = 5) -> dict[str, Any]:
    """Structured bag of lead attributes shared by every lead-level prompt."""
    pain_points = lead.distinct_pain_points
    return {
        "owner_name": lead.owner_name,
        "interest_level": lead.interest_level,
        "interest_scale": interest_scale,
        "business_type": lead.business_type or "Unknown",
        "monthly_revenue": lead.monthly_revenue or "Unknown",
        "number_of_employees": lead.number_of_employees or "Unknown",
        "territory": lead.territory or "Unknown",
        "pain_points": ", ".join(pain_points) if pain_points else "None specified",
        "specific_needs": truncate_for_context(lead.specific_needs, max_chars=1000) or "None specified",
    }


def summarize_leads(
    leads: Iterable[LeadRecord],
    pipeline_size: int,
    conversion_rate: float,
    territory: Optional[str] = None,
) -> SalesSummary:
    """Build a SalesSummary from the raw submission list (oldest first)."""
    leads = list(leads)
    if len(leads) < 2:
        trend = "insufficient data"
    else:
        recent, previous = leads[-7:], leads[-14:-7]
        if len(recent) > len(previous):
            trend = "increasing"
        elif len(recent) < len(previous):
            trend = "decreasing"
        else:
            trend = "stable"

    avg_interest = (
        round(sum(lead.interest_level for lead in leads) / len(leads), 1) if leads else 0.0
    )
    business_types = Counter(lead.business_type for lead in leads if lead.business_type)
    pain_points = Counter(point for lead in leads for point in lead.distinct_pain_points)

    return SalesSummary(
        total_submissions=len(leads),
        conversion_rate=conversion_rate,
        pipeline_size=pipeline_size,
        territory=territory,
        trend=trend,
        average_interest=avg_interest,
        top_business_types=[name for name, _ in business_types.most_common(3)],
        common_pain_points=[name for name, _ in pain_points.most_common(3)],
    )


def parse_lead_analysis(text: Optional[str]) -> LeadAnalysis:
    """
    Parse the analysis JSON, filling defaults for anything missing.

    Never raises: an unparseable payload yields the neutral fallback analysis.
    """
    raw = text or ""
    parsed = parse_json_safely(raw)
    if not isinstance(parsed, dict):
        logger.warning("Lead analysis response was not a JSON object; using defaults.")
        return LeadAnalysis(
            analysis=FALLBACK_ANALYSIS,
            recommendations=list(FALLBACK_RECOMMENDATIONS),
            confidence=NEUTRAL_CONFIDENCE,
            insights=list(FALLBACK_INSIGHTS),
            raw_response=raw,
            parsed=False,
        )

    confidence = parsed.get("confidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        confidence = int(max(0, min(100, round(confidence))))
    else:
        confidence = NEUTRAL_CONFIDENCE

    recommendations = parsed.get("recommendations")
    insights = parsed.get("insights")
    return LeadAnalysis(
        analysis=str(parsed.get("analysis") or "No analysis available"),
        recommendations=[str(r) for r in recommendations if r] if isinstance(recommendations, list) else [],
        confidence=confidence,
        insights=[str(i) for i in insights if i] if isinstance(insights, list) else [],
        raw_response=raw,
    )


# ── Adapter ───────────────────────────────────────────────────────────────────

class AIAdapter:
    """
    Async wrapper around the completion service.

    Args:
        config:              AIConfig (credential, model, timeout, budget).
        llm:                 Optional chat model; built from config when omitted.
        rate_limiter:        Shared limiter; one per adapter when omitted.
        product_description: What the sales team sells, injected into prompts.
        interest_scale:      Top of the interest scale shown to the model.
    """

    def __init__(
        self,
        config: AIConfig,
        llm: Optional[BaseChatModel] = None,
        rate_limiter: Optional[RateLimiter] = None,
        product_description: str = DEFAULT_PRODUCT_DESCRIPTION,
        interest_scale: int = 5,
    ):
        self.config = config
        self._llm = llm
        self.rate_limiter = rate_limiter or RateLimiter(config.max_requests_per_minute)
        self.product_description = product_description
        self.interest_scale = interest_scale
        if not config.enabled:
            if not config.api_key:
                logger.info("AI API key not configured; AI features will use rule-based fallbacks.")
            else:
                logger.info("AI features are disabled via configuration.")

    def is_available(self) -> bool:
        return self.config.enabled

    def _llm_for(self, temperature: float) -> BaseChatModel:
        if self._llm is not None:
            return self._llm
        return build_openrouter_llm(self.config, temperature=temperature)

    async def _invoke(
        self, prompt: ChatPromptTemplate, variables: dict[str, Any], temperature: float
    ) -> str:
        if not self.rate_limiter.try_acquire():
            raise ExternalServiceUnavailable(
                "AI request budget exhausted for the current window.",
                details={"max_requests_per_minute": self.rate_limiter.max_requests},
            )
        try:
            chain = prompt | self._llm_for(temperature)
            response = await asyncio.wait_for(
                chain.ainvoke({"product_description": self.product_description, **variables}),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceUnavailable(
                f"AI call timed out after {self.config.timeout_seconds}s."
            ) from e
        except Exception as e:
            raise ExternalServiceUnavailable(f"AI call failed: {e}") from e

        content = response.content if hasattr(response, "content") else response
        return content if isinstance(content, str) else str(content)

    async def _complete(
        self,
        purpose: str,
        prompt: ChatPromptTemplate,
        variables: dict[str, Any],
        temperature: float = 0.3,
    ) -> Optional[str]:
        """Run one completion; None when disabled or the call could not be made."""
        if not self.is_available():
            return None
        try:
            text = await self._invoke(prompt, variables, temperature)
        except ExternalServiceUnavailable as e:
            logger.warning("AI %s unavailable, falling back to rules: %s", purpose, e)
            return None
        if not text.strip():
            logger.warning("AI %s returned an empty response.", purpose)
            return None
        return text

    # ── 1. Lead analysis ──────────────────────────────────────────────────────

    async def enhance_lead_analysis(
        self,
        lead: LeadRecord,
        current_score: int,
        history: HistoricalOutcomes = DEFAULT_HISTORY,
    ) -> Optional[LeadAnalysis]:
        logger.info("Requesting AI analysis for lead %s (score %d).", lead.id, current_score)
        text = await self._complete(
            "lead analysis",
            LEAD_ANALYSIS_PROMPT,
            {
                **lead_prompt_context(lead, self.interest_scale),
                "current_score": current_score,
                "similar_leads_count": history.similar_leads_count,
                "conversion_rate_pct": round(history.conversion_rate * 100, 1),
                "avg_days_to_close": round(history.avg_days_to_close),
            },
            temperature=0.2,
        )
        if text is None:
            return None
        return parse_lead_analysis(text)

    # ── 2. Follow-up strategy ─────────────────────────────────────────────────

    async def generate_follow_up_strategy(
        self, lead: LeadRecord, stage: LeadStage
    ) -> Optional[list[str]]:
        text = await self._complete(
            "follow-up strategy",
            FOLLOW_UP_STRATEGY_PROMPT,
            {**lead_prompt_context(lead, self.interest_scale), "stage": LeadStage(stage).value},
            temperature=0.4,
        )
        if text is None:
            return None
        strategies = parse_text_list(text, limit=STRATEGY_LIMIT)
        if not strategies:
            logger.warning("AI follow-up strategy for lead %s had no usable entries.", lead.id)
            return None
        return strategies

    async def suggest_follow_ups(
        self, lead: LeadRecord, stage: LeadStage
    ) -> list[FollowUpRecommendation]:
        """Classified AI recommendations; empty when the service is unavailable."""
        strategies = await self.generate_follow_up_strategy(lead, stage)
        if not strategies:
            return []
        return classify_strategies(strategies)

    # ── 3. Email template ─────────────────────────────────────────────────────

    async def generate_email_template(
        self, lead: LeadRecord, template_type: str = "follow-up"
    ) -> Optional[str]:
        if template_type not in EMAIL_TEMPLATE_TYPES:
            logger.warning("Unknown email template type %r; using follow-up.", template_type)
            template_type = "follow-up"
        context = lead_prompt_context(lead, self.interest_scale)
        if not lead.distinct_pain_points:
            context["pain_points"] = "payment processing challenges"
        if not lead.specific_needs:
            context["specific_needs"] = "efficient payment solutions"
        text = await self._complete(
            "email template",
            EMAIL_TEMPLATE_PROMPT,
            {**context, "template_type": template_type},
            temperature=0.7,
        )
        return text.strip() if text is not None else None

    # ── 4. Sales insights ─────────────────────────────────────────────────────

    async def generate_sales_insights(self, summary: SalesSummary) -> Optional[list[str]]:
        text = await self._complete(
            "sales insights",
            SALES_INSIGHTS_PROMPT,
            {
                "total_submissions": summary.total_submissions,
                "conversion_rate_pct": round(summary.conversion_rate * 100, 1),
                "pipeline_size": summary.pipeline_size,
                "territory": summary.territory or "All territories",
                "trend": summary.trend,
                "average_interest": summary.average_interest,
                "top_business_types": ", ".join(summary.top_business_types) or "Various",
                "common_pain_points": ", ".join(summary.common_pain_points) or "Various",
            },
            temperature=0.4,
        )
        if text is None:
            return None
        insights = parse_text_list(text, limit=INSIGHT_LIMIT)
        return insights or None
