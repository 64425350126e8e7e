"""
lead_engine/exceptions.py — Typed, recoverable outcomes raised by the engine.

All engine errors inherit from LeadEngineError so the orchestrating process can
catch the whole family in one place. None of them should crash a request.
"""

from typing import Any, Optional


class LeadEngineError(Exception):
    """Base exception for every lead-engine error."""

    def __init__(self, message: str = "", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class InvalidInput(LeadEngineError):
    """Malformed input (e.g. budget min > max). Rejected, never silently corrected."""


class CapacityExceeded(LeadEngineError):
    """
    A manual assignment targets a rep who is already at or over capacity.

    Recoverable: the caller may retry the same assignment with force=True.
    """

    def __init__(self, rep_id: str, load: int, capacity: int) -> None:
        super().__init__(
            f"Rep {rep_id} is at capacity ({load}/{capacity}). Retry with force=True to override.",
            details={"rep_id": rep_id, "load": load, "capacity": capacity},
        )
        self.rep_id = rep_id
        self.load = load
        self.capacity = capacity


class ExternalServiceUnavailable(LeadEngineError):
    """
    The AI completion service timed out, failed, was rate limited or is disabled.

    Raised only inside the AI adapter and always absorbed at its boundary.
    """


class NoCandidates(LeadEngineError):
    """No sales rep serves the requested territory."""

    def __init__(self, territory: str, nearby_territories: Optional[list[str]] = None) -> None:
        super().__init__(
            f"No sales reps serve territory {territory!r}.",
            details={"territory": territory, "nearby_territories": nearby_territories or []},
        )
        self.territory = territory
        self.nearby_territories: list[str] = nearby_territories or []
