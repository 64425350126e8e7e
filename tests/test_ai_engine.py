"""
tests/test_ai_engine.py — Unit tests for the AI engine layer.

Tests helpers, output parsing and the adapter's degradation paths WITHOUT
making real LLM API calls. Chat models are LangChain fakes, so the prompt |
llm chains run end to end against canned responses.
"""

import asyncio
import json
import threading
from unittest.mock import patch

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from conftest import make_lead
from lead_engine.ai_engine.adapter import (
    FALLBACK_ANALYSIS,
    NEUTRAL_CONFIDENCE,
    AIAdapter,
    AIConfig,
    input_completeness,
    parse_lead_analysis,
    summarize_leads,
)
from lead_engine.ai_engine.classifier import (
    DEFAULT_AI_REASON,
    DEFAULT_AI_TIMING,
    classify_strategies,
    classify_strategy,
    extract_action,
    infer_priority,
    infer_timing,
    infer_type,
    template_type_for,
)
from lead_engine.ai_engine.coordinator import LatestRequestCoordinator
from lead_engine.ai_engine.rate_limiter import RateLimiter
from lead_engine.ai_engine.utils import parse_json_safely, parse_text_list, truncate_for_context
from lead_engine.models import LeadStage, Origin, Priority, RecommendationType

ENABLED = AIConfig(api_key="test-key", model="test-model", timeout_seconds=5)


def _adapter(*responses: str, config: AIConfig = ENABLED, **kwargs) -> AIAdapter:
    return AIAdapter(config, llm=FakeListChatModel(responses=list(responses)), **kwargs)


# ── parse_json_safely ─────────────────────────────────────────────────────────

class TestParseJsonSafely:
    def test_parses_clean_json_object(self):
        assert parse_json_safely('{"confidence": 85}') == {"confidence": 85}

    def test_parses_clean_json_array(self):
        assert parse_json_safely('["call", "email"]') == ["call", "email"]

    def test_strips_markdown_code_fence(self):
        assert parse_json_safely('```json\n{"key": "value"}\n```') == {"key": "value"}

    def test_extracts_json_from_surrounding_text(self):
        assert parse_json_safely('Here is the result:\n{"score": 75}\nDone.') == {"score": 75}

    def test_returns_none_for_invalid_json(self):
        assert parse_json_safely("This is not JSON at all.") is None

    def test_returns_none_for_empty(self):
        assert parse_json_safely("") is None
        assert parse_json_safely(None) is None


# ── parse_text_list ───────────────────────────────────────────────────────────

class TestParseTextList:
    def test_json_array(self):
        assert parse_text_list('["Call today", "Send pricing"]', limit=5) == ["Call today", "Send pricing"]

    def test_json_object_with_list(self):
        assert parse_text_list('{"strategies": ["Call today"]}', limit=5) == ["Call today"]

    def test_numbered_and_bulleted_lines(self):
        text = "1. **Call the owner**\n- Send pricing\n\n* Book a demo"
        assert parse_text_list(text, limit=5) == ["Call the owner", "Send pricing", "Book a demo"]

    def test_limit(self):
        assert len(parse_text_list(json.dumps([f"step {i}" for i in range(9)]), limit=5)) == 5

    def test_blank(self):
        assert parse_text_list("   ", limit=5) == []


class TestTruncateForContext:
    def test_short_string_unchanged(self):
        assert truncate_for_context("Short text", max_chars=100) == "Short text"

    def test_long_string_truncated(self):
        result = truncate_for_context("a" * 3000, max_chars=2000)
        assert len(result) == 2003
        assert result.endswith("...")

    def test_none_returns_empty(self):
        assert truncate_for_context(None, max_chars=100) == ""


# ── Strategy classifier ───────────────────────────────────────────────────────

class TestClassifier:
    @pytest.mark.parametrize("text,expected", [
        ("Call the owner this afternoon", RecommendationType.CALL),
        ("Send a short email recap", RecommendationType.EMAIL),
        ("Book a demo with the manager", RecommendationType.MEETING),
        ("Share the Montego Bay case study", RecommendationType.CONTENT),
        ("Update CRM notes", RecommendationType.TASK),
    ])
    def test_type(self, text, expected):
        assert infer_type(text) == expected

    @pytest.mark.parametrize("text,index,expected", [
        ("Send brochure", 0, Priority.URGENT),
        ("Send brochure", 1, Priority.HIGH),
        ("Send brochure", 2, Priority.MEDIUM),
        ("Send brochure", 3, Priority.LOW),
        ("Follow up with high priority", 3, Priority.HIGH),
        ("Immediate callback needed", 4, Priority.URGENT),
    ])
    def test_priority(self, text, index, expected):
        assert infer_priority(text, index) == expected

    def test_timing_cues(self):
        assert infer_timing("Reach out ASAP") == "Immediately"
        assert infer_timing("Follow up tomorrow morning") == "Within 24 hours"
        assert infer_timing("Send the deck") == DEFAULT_AI_TIMING

    def test_action_prefers_directive_sentence(self):
        text = "They asked about fees. You should send a follow-up email with pricing details."
        assert extract_action(text) == "send a follow-up email with pricing details."

    def test_full_classification(self):
        rec = classify_strategy("Call the owner today because they asked for pricing.", 0)
        assert rec.id == "ai-recommendation-0"
        assert rec.origin == Origin.AI
        assert rec.type == RecommendationType.CALL
        assert rec.priority == Priority.URGENT
        assert rec.suggested_timing == "Today"
        assert "because" in rec.reason

    def test_default_reason(self):
        assert classify_strategy("Send pricing sheet", 2).reason == DEFAULT_AI_REASON

    def test_empty_strategies_skipped(self):
        recs = classify_strategies(["", "Call them back"])
        assert [r.id for r in recs] == ["ai-recommendation-1"]
        assert recs[0].priority == Priority.HIGH

    def test_template_type(self):
        assert template_type_for(classify_strategy("Book a product demo", 0)) == "demo-invite"
        assert template_type_for(classify_strategy("Draft the proposal", 0)) == "proposal"
        assert template_type_for(classify_strategy("Check in with them", 0)) == "follow-up"


# ── Rate limiter ──────────────────────────────────────────────────────────────

class TestRateLimiter:
    def test_window_budget(self):
        now = [0.0]
        limiter = RateLimiter(2, window_seconds=60, clock=lambda: now[0])
        assert limiter.try_acquire()
        assert limiter.try_acquire()
        assert not limiter.try_acquire()
        assert limiter.remaining == 0

        now[0] = 61.0
        assert limiter.remaining == 2
        assert limiter.try_acquire()

    def test_rejects_zero_budget(self):
        with pytest.raises(ValueError):
            RateLimiter(0)

    def test_concurrent_threads_share_one_budget(self):
        limiter = RateLimiter(5, window_seconds=60)
        callers = 24
        start = threading.Barrier(callers)
        results = []

        def caller():
            start.wait()
            results.append(limiter.try_acquire())

        threads = [threading.Thread(target=caller) for _ in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == callers
        assert results.count(True) == 5
        assert limiter.remaining == 0

    def test_concurrent_tasks_share_one_budget(self):
        limiter = RateLimiter(3, window_seconds=60)

        async def caller():
            await asyncio.sleep(0)
            return limiter.try_acquire()

        async def scenario():
            return await asyncio.gather(*(caller() for _ in range(10)))

        assert sum(asyncio.run(scenario())) == 3


# ── Latest-request coordinator ────────────────────────────────────────────────

class TestCoordinator:
    def test_newer_request_supersedes_older(self):
        async def scenario():
            coordinator = LatestRequestCoordinator()
            release = asyncio.Event()

            async def slow():
                await release.wait()
                return "old"

            async def fast():
                return "new"

            first = asyncio.ensure_future(coordinator.run("lead-1", slow))
            await asyncio.sleep(0)
            assert coordinator.in_flight("lead-1")
            second = await coordinator.run("lead-1", fast)
            return await first, second, coordinator.in_flight("lead-1"), coordinator.tracked_keys

        first, second, still_running, tracked = asyncio.run(scenario())
        assert first is None
        assert second == "new"
        assert not still_running
        assert tracked == 0

    def test_finished_keys_are_released(self):
        async def scenario():
            coordinator = LatestRequestCoordinator()

            async def value(v):
                return v

            results = [await coordinator.run(f"lead-{i}", lambda: value(i)) for i in range(50)]
            return results, coordinator.tracked_keys

        results, tracked = asyncio.run(scenario())
        assert results == list(range(50))
        assert tracked == 0

    def test_failed_request_releases_key(self):
        async def scenario():
            coordinator = LatestRequestCoordinator()

            async def boom():
                raise RuntimeError("provider down")

            with pytest.raises(RuntimeError):
                await coordinator.run("lead-1", boom)
            return coordinator.tracked_keys, coordinator.in_flight("lead-1")

        assert asyncio.run(scenario()) == (0, False)

    def test_stale_marker(self):
        marker = object()

        async def scenario():
            coordinator = LatestRequestCoordinator()

            async def never():
                await asyncio.Event().wait()

            async def done():
                return 1

            first = asyncio.ensure_future(coordinator.run("k", never, stale=marker))
            await asyncio.sleep(0)
            await coordinator.run("k", done)
            return await first

        assert asyncio.run(scenario()) is marker

    def test_independent_keys(self):
        async def scenario():
            coordinator = LatestRequestCoordinator()

            async def value(v):
                await asyncio.sleep(0)
                return v

            return await asyncio.gather(
                coordinator.run("a", lambda: value(1)),
                coordinator.run("b", lambda: value(2)),
            )

        assert asyncio.run(scenario()) == [1, 2]


# ── Analysis parsing ──────────────────────────────────────────────────────────

class TestParseLeadAnalysis:
    def test_fenced_payload(self):
        text = '```json\n{"analysis": "Strong fit", "recommendations": ["Call"], "confidence": 140, "insights": ["Busy season"]}\n```'
        analysis = parse_lead_analysis(text)
        assert analysis.parsed
        assert analysis.confidence == 100
        assert analysis.recommendations == ["Call"]

    def test_unparseable_uses_neutral_defaults(self):
        analysis = parse_lead_analysis("Sorry, I cannot help.")
        assert not analysis.parsed
        assert analysis.analysis == FALLBACK_ANALYSIS
        assert analysis.confidence == NEUTRAL_CONFIDENCE

    def test_missing_confidence(self):
        assert parse_lead_analysis('{"analysis": "ok"}').confidence == NEUTRAL_CONFIDENCE


class TestLeadContext:
    def test_input_completeness(self, lead):
        assert input_completeness(lead) == 70

    def test_summarize_leads(self):
        leads = [
            make_lead(id=f"l{i}", interest_level=2 + i % 3, business_type="Bar" if i % 2 else "Restaurant",
                      pain_points=["Card fees"])
            for i in range(10)
        ]
        summary = summarize_leads(leads, pipeline_size=6, conversion_rate=0.2)
        assert summary.total_submissions == 10
        assert summary.trend == "increasing"
        assert summary.top_business_types == ["Restaurant", "Bar"]
        assert summary.common_pain_points == ["Card fees"]

    def test_summarize_empty(self):
        summary = summarize_leads([], pipeline_size=0, conversion_rate=0.0)
        assert summary.trend == "insufficient data"
        assert summary.average_interest == 0.0


# ── Adapter ───────────────────────────────────────────────────────────────────

class TestAIAdapter:
    def test_disabled_without_key(self, lead):
        with patch("lead_engine.ai_engine.adapter.build_openrouter_llm") as mock_build_llm:
            adapter = AIAdapter(AIConfig(api_key=None))
            assert not adapter.is_available()
            assert asyncio.run(adapter.enhance_lead_analysis(lead, 40)) is None
            assert asyncio.run(adapter.suggest_follow_ups(lead, LeadStage.NEW)) == []
        mock_build_llm.assert_not_called()

    def test_disabled_by_flag(self):
        assert not AIAdapter(AIConfig(api_key="k", enabled_flag=False)).is_available()

    def test_builds_llm_from_config(self, lead):
        with patch("lead_engine.ai_engine.adapter.build_openrouter_llm") as mock_build_llm:
            mock_build_llm.return_value = FakeListChatModel(responses=['{"analysis": "ok", "confidence": 70}'])
            result = asyncio.run(AIAdapter(ENABLED).enhance_lead_analysis(lead, 40))
        assert result.confidence == 70
        mock_build_llm.assert_called_once_with(ENABLED, temperature=0.2)

    def test_analysis_parse_fallback(self, lead):
        result = asyncio.run(_adapter("no json here").enhance_lead_analysis(lead, 40))
        assert result is not None
        assert not result.parsed
        assert result.confidence == NEUTRAL_CONFIDENCE

    def test_follow_up_strategy(self, lead):
        text = "1. Call the owner today\n2. Send pricing email\n3. Book a demo next week"
        strategies = asyncio.run(_adapter(text).generate_follow_up_strategy(lead, LeadStage.CONTACTED))
        assert strategies == ["Call the owner today", "Send pricing email", "Book a demo next week"]

    def test_suggest_follow_ups_are_ai_origin(self, lead):
        recs = asyncio.run(_adapter('["Call the owner today", "Send pricing email"]').suggest_follow_ups(lead, "new"))
        assert [r.origin for r in recs] == [Origin.AI, Origin.AI]
        assert [r.type for r in recs] == [RecommendationType.CALL, RecommendationType.EMAIL]

    def test_timeout_returns_none(self, lead):
        async def slow(_prompt_value):
            await asyncio.sleep(1)
            return "too late"

        config = AIConfig(api_key="k", timeout_seconds=0.01)
        adapter = AIAdapter(config, llm=RunnableLambda(slow))
        assert asyncio.run(adapter.enhance_lead_analysis(lead, 40)) is None

    def test_transport_error_returns_none(self, lead):
        async def broken(_prompt_value):
            raise ConnectionError("connection reset")

        adapter = AIAdapter(ENABLED, llm=RunnableLambda(broken))
        assert asyncio.run(adapter.generate_email_template(lead)) is None

    def test_rate_limited_returns_none(self, lead):
        adapter = _adapter("First draft", "Second draft", rate_limiter=RateLimiter(1))
        assert asyncio.run(adapter.generate_email_template(lead)) == "First draft"
        assert asyncio.run(adapter.generate_email_template(lead)) is None

    def test_empty_response_returns_none(self, lead):
        assert asyncio.run(_adapter("   ").generate_email_template(lead)) is None

    def test_unknown_template_type_falls_back(self, lead):
        assert asyncio.run(_adapter("  Hi Keisha  ").generate_email_template(lead, "haiku")) == "Hi Keisha"

    def test_sales_insights(self):
        summary = summarize_leads([make_lead()], pipeline_size=1, conversion_rate=0.1)
        insights = asyncio.run(_adapter('["Focus on restaurants", "Push Kingston"]').generate_sales_insights(summary))
        assert insights == ["Focus on restaurants", "Push Kingston"]
