"""
lead_engine/ai_engine/classifier.py — Turn free-text AI strategies into recommendations.

Keyword heuristics only; no model call happens here. Each strategy string
becomes a FollowUpRecommendation with origin=ai, or is skipped when no usable
action text remains after cleanup.
"""

import logging
import re
from typing import Iterable, Optional

from lead_engine.models import FollowUpRecommendation, Origin, Priority, RecommendationType

logger = logging.getLogger(__name__)

DEFAULT_AI_REASON = "AI-recommended action based on lead analysis"
DEFAULT_AI_TIMING = "Within 48 hours"

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_ACTION_PREFIX = re.compile(r"^(?:you should|i recommend|recommended action:?|action:)\s*", re.IGNORECASE)

# First match wins.
_TYPE_KEYWORDS: list[tuple[RecommendationType, tuple[str, ...]]] = [
    (RecommendationType.CALL, ("call", "phone")),
    (RecommendationType.EMAIL, ("email", "message")),
    (RecommendationType.MEETING, ("meeting", "demo")),
    (RecommendationType.CONTENT, ("content", "share")),
]

_TIMING_CUES: list[tuple[str, tuple[str, ...]]] = [
    ("Immediately", ("immediately", "asap")),
    ("Today", ("today",)),
    ("Within 24 hours", ("24 hours", "tomorrow")),
    ("This week", ("this week",)),
    ("Next week", ("next week",)),
]

_REASON_CUES = ("because", "since", "to ensure", "given")
_ACTION_CUES = ("should", "recommend", "action")


def _has_word(text: str, *words: str) -> bool:
    return any(re.search(rf"\b{re.escape(word)}", text) for word in words)


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text.strip()) if s.strip()]


def infer_type(strategy: str) -> RecommendationType:
    lowered = strategy.lower()
    for rec_type, words in _TYPE_KEYWORDS:
        if _has_word(lowered, *words):
            return rec_type
    return RecommendationType.TASK


def infer_priority(strategy: str, index: int) -> Priority:
    """Keyword cues first, then position in the model's list."""
    lowered = strategy.lower()
    if _has_word(lowered, "urgent", "immediate") or index == 0:
        return Priority.URGENT
    if _has_word(lowered, "high", "priority") or index == 1:
        return Priority.HIGH
    if index >= 3:
        return Priority.LOW
    return Priority.MEDIUM


def extract_action(strategy: str) -> str:
    sentences = _sentences(strategy)
    if not sentences:
        return ""
    chosen = next(
        (s for s in sentences if _has_word(s.lower(), *_ACTION_CUES)),
        sentences[0],
    )
    return _ACTION_PREFIX.sub("", chosen).strip()


def extract_reason(strategy: str) -> str:
    for sentence in _sentences(strategy):
        if any(cue in sentence.lower() for cue in _REASON_CUES):
            return sentence
    return DEFAULT_AI_REASON


def infer_timing(strategy: str) -> str:
    lowered = strategy.lower()
    for timing, cues in _TIMING_CUES:
        if any(cue in lowered for cue in cues):
            return timing
    return DEFAULT_AI_TIMING


def classify_strategy(strategy: str, index: int) -> Optional[FollowUpRecommendation]:
    """Classify one strategy string; None when it carries no action text."""
    action = extract_action(strategy or "")
    if not action:
        return None
    return FollowUpRecommendation(
        id=f"ai-recommendation-{index}",
        type=infer_type(strategy),
        priority=infer_priority(strategy, index),
        action=action,
        reason=extract_reason(strategy),
        suggested_timing=infer_timing(strategy),
        origin=Origin.AI,
    )


def classify_strategies(strategies: Iterable[str]) -> list[FollowUpRecommendation]:
    recommendations = []
    for index, strategy in enumerate(strategies):
        rec = classify_strategy(strategy, index)
        if rec is None:
            logger.debug("Skipping AI strategy %d with no usable action text.", index)
            continue
        recommendations.append(rec)
    return recommendations


def template_type_for(recommendation: FollowUpRecommendation) -> str:
    """Email template flavour that best fits a recommendation's action."""
    action = recommendation.action.lower()
    if "demo" in action or "presentation" in action:
        return "demo-invite"
    if "proposal" in action or "contract" in action:
        return "proposal"
    if "introduc" in action or "initial" in action:
        return "introduction"
    return "follow-up"
