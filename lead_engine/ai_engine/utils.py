"""
lead_engine/ai_engine/utils.py — Shared AI helper utilities.

Provides:
  - build_openrouter_llm()  : factory for the LangChain-compatible OpenRouter LLM
  - parse_json_safely()     : robust JSON extraction from messy LLM text
  - parse_text_list()       : JSON array or bullet/numbered lines → list[str]
  - truncate_for_context()  : safely trim long strings to fit LLM context window
"""

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Optional

from langchain_openai import ChatOpenAI

if TYPE_CHECKING:
    from lead_engine.ai_engine.adapter import AIConfig

logger = logging.getLogger(__name__)

# OpenRouter's base URL (drop-in OpenAI-compatible API)
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]+|\d+[.)]|\(\d+\))\s*")


def build_openrouter_llm(config: "AIConfig", temperature: float = 0.3) -> ChatOpenAI:
    """
    Build a LangChain ChatOpenAI client pointed at OpenRouter.

    Args:
        config:      AI adapter configuration (key, model, timeout).
        temperature: 0.0 = deterministic, 1.0 = creative.
                     Use low temp (0.1–0.3) for structured JSON outputs,
                     higher (0.6–0.8) for email drafting.

    Returns:
        A LangChain-compatible LLM instance.
    """
    return ChatOpenAI(
        model=config.model,
        api_key=config.api_key,
        base_url=config.base_url or OPENROUTER_BASE_URL,
        temperature=temperature,
        timeout=config.timeout_seconds,
        # The adapter applies its own deadline; client retries would outlive it.
        max_retries=0,
        default_headers={
            "X-Title": "Lead Engine",
        },
    )


def parse_json_safely(text: Optional[str]) -> dict[str, Any] | list[Any] | None:
    """
    Robustly extract and parse a JSON object or array from LLM output.

    Handles cases where the LLM wraps JSON in markdown code fences like:
        ```json
        { ... }
        ```

    Returns the parsed Python object, or None if parsing fails.
    """
    if not text:
        return None

    # Strip markdown code fences (```json ... ``` or ``` ... ```)
    cleaned = re.sub(r"```(?:json)?\s*([\s\S]*?)```", r"\1", text.strip())
    cleaned = cleaned.strip()

    # Try direct parse first
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Try to extract the first JSON object {...} or array [...]
    for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
        match = re.search(pattern, cleaned)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                continue

    logger.warning("Could not parse JSON from LLM output: %s", text[:200])
    return None


def strip_list_marker(line: str) -> str:
    """'1. Call today' / '- Call today' / '**Call today**' → 'Call today'."""
    line = _LIST_MARKER.sub("", line.strip())
    return line.replace("**", "").strip().strip('",').strip()


def parse_text_list(text: Optional[str], limit: int) -> list[str]:
    """
    Turn a completion into a list of non-empty strings.

    Accepts a JSON array (optionally fenced or wrapped in prose), a JSON object
    holding one list value, or plain bullet / numbered lines.
    """
    if not text or not text.strip():
        return []

    parsed = parse_json_safely(text)
    if isinstance(parsed, dict):
        parsed = next((v for v in parsed.values() if isinstance(v, list)), None)
    if isinstance(parsed, list):
        items = [strip_list_marker(str(item)) for item in parsed if item is not None]
        return [item for item in items if item][:limit]

    lines = []
    for raw_line in text.splitlines():
        if raw_line.strip().startswith("```") or raw_line.strip() in ("[", "]"):
            continue
        line = strip_list_marker(raw_line)
        if line:
            lines.append(line)
    return lines[:limit]


def truncate_for_context(text: Optional[str], max_chars: int = 2000) -> str:
    """
    Trim a string to max_chars to avoid exceeding LLM context window.
    Appends '...' if truncated.
    """
    if not text or len(text) <= max_chars:
        return text or ""
    return text[:max_chars] + "..."
