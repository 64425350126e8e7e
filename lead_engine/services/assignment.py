"""
lead_engine/services/assignment.py — Territory workload balancer.

Availability is derived from load vs. capacity on every call, never stored:
  - unavailable : load >= capacity
  - busy        : load >= 80% of capacity
  - available   : otherwise

Auto mode filters reps to the territory, drops unavailable ones (unless that
leaves nobody, which becomes a flagged overflow assignment) and ranks the rest
by load band, conversion rate, raw load and rep id. A high-value deal goes to
the available rep with the largest average deal size first. When nobody serves
the territory the caller may opt in to a rep from a neighbouring one. Manual
mode skips ranking but refuses an unavailable rep unless the caller forces it.

The rep snapshot may be stale the moment it is read; assignment is a
best-effort recommendation, not a reservation.
"""

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from lead_engine.exceptions import CapacityExceeded, InvalidInput, NoCandidates
from lead_engine.models import Availability, SalesRep

logger = logging.getLogger(__name__)


# ── Enums ────────────────────────────────────────────────────────────────────

class AssignmentMode(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkloadStatus(str, enum.Enum):
    UNDERUTILIZED = "underutilized"
    OPTIMAL = "optimal"
    BUSY = "busy"
    OVERLOADED = "overloaded"


class AssignmentReason(str, enum.Enum):
    RANKED = "ranked"
    SPECIALIST = "specialist"
    NEARBY = "nearby"
    OVERFLOW = "overflow"
    MANUAL = "manual"
    FORCED = "forced"
    NO_CANDIDATES = "no_candidates"


# ── Territory proximity ──────────────────────────────────────────────────────

JAMAICA_PARISH_PROXIMITY: dict[str, list[str]] = {
    "Kingston": ["St. Andrew", "St. Catherine", "St. Thomas"],
    "St. Andrew": ["Kingston", "St. Catherine", "St. Mary", "St. Thomas"],
    "St. Catherine": ["Kingston", "St. Andrew", "Clarendon", "St. Mary"],
    "Clarendon": ["St. Catherine", "Manchester", "St. Ann"],
    "Manchester": ["Clarendon", "St. Elizabeth", "Trelawny", "St. Ann"],
    "St. Elizabeth": ["Manchester", "Westmoreland"],
    "Westmoreland": ["St. Elizabeth", "Hanover", "St. James"],
    "Hanover": ["Westmoreland", "St. James"],
    "St. James": ["Hanover", "Westmoreland", "Trelawny"],
    "Trelawny": ["St. James", "St. Ann", "Manchester"],
    "St. Ann": ["Trelawny", "St. Mary", "Clarendon", "Manchester"],
    "St. Mary": ["St. Ann", "Portland", "St. Andrew", "St. Catherine"],
    "Portland": ["St. Mary", "St. Thomas"],
    "St. Thomas": ["Portland", "Kingston", "St. Andrew"],
}

JAMAICA_PARISH_REGIONS: dict[str, str] = {
    "Kingston": "Eastern",
    "St. Andrew": "Eastern",
    "St. Thomas": "Eastern",
    "Portland": "Eastern",
    "St. Mary": "Eastern",
    "St. Catherine": "Central",
    "Clarendon": "Central",
    "Manchester": "Central",
    "St. Ann": "Central",
    "Trelawny": "Central",
    "St. Elizabeth": "Western",
    "Westmoreland": "Western",
    "Hanover": "Western",
    "St. James": "Western",
}


@dataclass(frozen=True)
class BalancerConfig:
    busy_fraction: float = 0.8
    load_band_width: float = 20.0       # load-% points treated as equivalent when ranking
    max_alternatives: int = 2
    high_value_deal_min: float = 50_000
    specialist_min_avg_deal: float = 40_000
    reassignment_avg_load: float = 15   # open leads per rep before a territory needs help
    max_reassignment_suggestions: int = 2
    proximity: dict[str, list[str]] = field(default_factory=lambda: dict(JAMAICA_PARISH_PROXIMITY))
    regions: dict[str, str] = field(default_factory=lambda: dict(JAMAICA_PARISH_REGIONS))


DEFAULT_BALANCER = BalancerConfig()


# ── Result types ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RepWorkload:
    rep: SalesRep
    load_percentage: float
    availability: Availability
    status: WorkloadStatus


@dataclass(frozen=True)
class AssignmentResult:
    rep_id: Optional[str]
    overflow: bool
    reason: AssignmentReason
    territory: str
    load_percentage: Optional[float] = None
    alternative_rep_ids: list[str] = field(default_factory=list)
    nearby_territories: list[str] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.rep_id is not None


# ── Derived workload ─────────────────────────────────────────────────────────

def load_percentage(load: int, capacity: int) -> float:
    """Load as a percentage of capacity; above 100 signals overload."""
    if capacity <= 0:
        raise InvalidInput(f"Capacity must be > 0, got {capacity}.")
    return max(0.0, load / capacity * 100)


def availability_tier(load: int, capacity: int, busy_fraction: float = 0.8) -> Availability:
    if load >= capacity:
        return Availability.UNAVAILABLE
    if load >= capacity * busy_fraction:
        return Availability.BUSY
    return Availability.AVAILABLE


def workload_status(percentage: float) -> WorkloadStatus:
    if percentage < 50:
        return WorkloadStatus.UNDERUTILIZED
    if percentage < 80:
        return WorkloadStatus.OPTIMAL
    if percentage < 100:
        return WorkloadStatus.BUSY
    return WorkloadStatus.OVERLOADED


def describe_workload(rep: SalesRep, config: BalancerConfig = DEFAULT_BALANCER) -> RepWorkload:
    pct = load_percentage(rep.current_load, rep.max_capacity)
    return RepWorkload(
        rep=rep,
        load_percentage=round(pct, 1),
        availability=availability_tier(rep.current_load, rep.max_capacity, config.busy_fraction),
        status=workload_status(pct),
    )


def build_roster(
    profiles: Iterable[SalesRep],
    open_leads: Iterable[tuple[str, Optional[str]]],
    territory: Optional[str] = None,
) -> list[SalesRep]:
    """
    Annotate rep profiles with the load implied by the live lead list.

    Args:
        profiles:   Rep profiles (capacity, territories, performance).
        open_leads: (assigned_rep_id, territory) for every currently-open lead.
        territory:  When given, only open leads in this territory count toward load.

    Returns:
        Copies of the profiles with current_load recomputed.
    """
    counts = Counter(
        rep_id for rep_id, lead_territory in open_leads
        if rep_id and (territory is None or lead_territory == territory)
    )
    return [replace(rep, current_load=counts.get(rep.id, 0)) for rep in profiles]


def nearby_territories(territory: str, config: BalancerConfig = DEFAULT_BALANCER) -> list[str]:
    return list(config.proximity.get(territory, []))


def territory_region(territory: str, config: BalancerConfig = DEFAULT_BALANCER) -> Optional[str]:
    return config.regions.get(territory)


# ── Ranking ──────────────────────────────────────────────────────────────────

def _rank_key(rep: SalesRep, config: BalancerConfig) -> tuple:
    pct = load_percentage(rep.current_load, rep.max_capacity)
    band = int(pct // config.load_band_width) if config.load_band_width > 0 else pct
    return (band, -rep.conversion_rate, pct, rep.id)


def _overflow_key(rep: SalesRep) -> tuple:
    return (load_percentage(rep.current_load, rep.max_capacity), -rep.conversion_rate, rep.id)


def territory_candidates(
    territory: str,
    reps: Iterable[SalesRep],
    config: BalancerConfig = DEFAULT_BALANCER,
) -> list[SalesRep]:
    """
    Reps serving the territory.

    Raises:
        NoCandidates: If nobody serves it.
    """
    candidates = [rep for rep in reps if rep.serves(territory)]
    if not candidates:
        raise NoCandidates(territory, nearby_territories(territory, config))
    return candidates


def rank_candidates(
    candidates: Iterable[SalesRep],
    config: BalancerConfig = DEFAULT_BALANCER,
) -> list[SalesRep]:
    return sorted(candidates, key=lambda rep: _rank_key(rep, config))


def _alternatives(chosen_id: str, ranked: list[SalesRep], config: BalancerConfig) -> list[str]:
    return [
        rep.id for rep in ranked
        if rep.id != chosen_id
        and availability_tier(rep.current_load, rep.max_capacity, config.busy_fraction) != Availability.UNAVAILABLE
    ][:config.max_alternatives]


def _is_available(rep: SalesRep, config: BalancerConfig) -> bool:
    return availability_tier(rep.current_load, rep.max_capacity, config.busy_fraction) == Availability.AVAILABLE


def high_value_specialists(
    candidates: Iterable[SalesRep],
    config: BalancerConfig = DEFAULT_BALANCER,
) -> list[SalesRep]:
    """Available reps whose average deal is large enough for a high-value lead, largest first."""
    specialists = [
        rep for rep in candidates
        if _is_available(rep, config) and rep.avg_deal_size >= config.specialist_min_avg_deal
    ]
    return sorted(specialists, key=lambda rep: (-rep.avg_deal_size, rep.id))


def nearby_candidates(
    territory: str,
    reps: Iterable[SalesRep],
    config: BalancerConfig = DEFAULT_BALANCER,
) -> list[SalesRep]:
    """Available reps serving a neighbouring territory, best converter first."""
    neighbours = set(nearby_territories(territory, config))
    found = [
        rep for rep in reps
        if rep.territories & neighbours and _is_available(rep, config)
    ]
    return sorted(found, key=lambda rep: (-rep.conversion_rate, rep.id))


def _nearby_assignment(
    territory: str,
    reps: list[SalesRep],
    nearby: list[str],
    config: BalancerConfig,
) -> AssignmentResult:
    found = nearby_candidates(territory, reps, config)
    if not found:
        return AssignmentResult(
            rep_id=None,
            overflow=False,
            reason=AssignmentReason.NO_CANDIDATES,
            territory=territory,
            nearby_territories=nearby,
        )
    chosen = found[0]
    logger.info(
        "No rep serves %s; assigned to %s from a neighbouring territory (%s).",
        territory, chosen.id, ", ".join(sorted(chosen.territories)),
    )
    return AssignmentResult(
        rep_id=chosen.id,
        overflow=False,
        reason=AssignmentReason.NEARBY,
        territory=territory,
        load_percentage=round(load_percentage(chosen.current_load, chosen.max_capacity), 1),
        alternative_rep_ids=[rep.id for rep in found[1:1 + config.max_alternatives]],
        nearby_territories=nearby,
    )


# ── Assignment ───────────────────────────────────────────────────────────────

def auto_assign(
    territory: str,
    reps: Iterable[SalesRep],
    urgency: Urgency = Urgency.MEDIUM,
    config: BalancerConfig = DEFAULT_BALANCER,
    deal_size: Optional[float] = None,
    allow_nearby: bool = False,
) -> AssignmentResult:
    """
    Pick the best-placed rep for a new lead in `territory`.

    Args:
        territory:    Territory the lead belongs to.
        reps:         Roster with current load.
        urgency:      HIGH skips busy reps while an available one exists.
        config:       Balancer tuning.
        deal_size:    Expected deal value; large deals go to specialists first.
        allow_nearby: When nobody serves the territory, take an available rep
                      from a neighbouring one instead of returning no_candidates.
    """
    reps = list(reps)
    try:
        candidates = territory_candidates(territory, reps, config)
    except NoCandidates as e:
        logger.warning("%s Nearby: %s", e, e.nearby_territories)
        if allow_nearby:
            return _nearby_assignment(territory, reps, e.nearby_territories, config)
        return AssignmentResult(
            rep_id=None,
            overflow=False,
            reason=AssignmentReason.NO_CANDIDATES,
            territory=territory,
            nearby_territories=e.nearby_territories,
        )

    tiers = {
        rep.id: availability_tier(rep.current_load, rep.max_capacity, config.busy_fraction)
        for rep in candidates
    }
    open_reps = [rep for rep in candidates if tiers[rep.id] != Availability.UNAVAILABLE]

    if not open_reps:
        chosen = min(candidates, key=_overflow_key)
        pct = load_percentage(chosen.current_load, chosen.max_capacity)
        logger.warning(
            "Every rep in %s is at capacity; overflow-assigning to %s (%d/%d).",
            territory, chosen.id, chosen.current_load, chosen.max_capacity,
        )
        return AssignmentResult(
            rep_id=chosen.id,
            overflow=True,
            reason=AssignmentReason.OVERFLOW,
            territory=territory,
            load_percentage=round(pct, 1),
        )

    if deal_size is not None and deal_size >= config.high_value_deal_min:
        specialists = high_value_specialists(open_reps, config)
        if specialists:
            chosen = specialists[0]
            logger.info(
                "High-value lead in %s (%.0f) routed to specialist %s (avg deal %.0f).",
                territory, deal_size, chosen.id, chosen.avg_deal_size,
            )
            return AssignmentResult(
                rep_id=chosen.id,
                overflow=False,
                reason=AssignmentReason.SPECIALIST,
                territory=territory,
                load_percentage=round(load_percentage(chosen.current_load, chosen.max_capacity), 1),
                alternative_rep_ids=_alternatives(chosen.id, rank_candidates(candidates, config), config),
            )

    if urgency == Urgency.HIGH:
        fully_available = [rep for rep in open_reps if tiers[rep.id] == Availability.AVAILABLE]
        if fully_available:
            open_reps = fully_available

    ranked = rank_candidates(open_reps, config)
    chosen = ranked[0]
    logger.info(
        "Auto-assigned lead in %s to %s (load %d/%d, conversion %.0f%%).",
        territory, chosen.id, chosen.current_load, chosen.max_capacity, chosen.conversion_rate * 100,
    )
    return AssignmentResult(
        rep_id=chosen.id,
        overflow=False,
        reason=AssignmentReason.RANKED,
        territory=territory,
        load_percentage=round(load_percentage(chosen.current_load, chosen.max_capacity), 1),
        alternative_rep_ids=_alternatives(chosen.id, rank_candidates(candidates, config), config),
    )


def manual_assign(
    territory: str,
    reps: Iterable[SalesRep],
    rep_id: str,
    force: bool = False,
    config: BalancerConfig = DEFAULT_BALANCER,
) -> AssignmentResult:
    """
    Assign to a caller-chosen rep.

    Raises:
        InvalidInput:     If rep_id is not in the roster.
        CapacityExceeded: If the rep is unavailable and force is False.
    """
    roster = {rep.id: rep for rep in reps}
    rep = roster.get(rep_id)
    if rep is None:
        raise InvalidInput(f"Unknown sales rep {rep_id!r}.", details={"rep_id": rep_id})
    if not rep.serves(territory):
        logger.info("Manual assignment of %s outside their territories (%s).", rep_id, territory)

    pct = load_percentage(rep.current_load, rep.max_capacity)
    tier = availability_tier(rep.current_load, rep.max_capacity, config.busy_fraction)
    if tier == Availability.UNAVAILABLE:
        if not force:
            raise CapacityExceeded(rep.id, rep.current_load, rep.max_capacity)
        logger.warning(
            "Forced assignment to %s beyond capacity (%d/%d).",
            rep.id, rep.current_load, rep.max_capacity,
        )
        return AssignmentResult(
            rep_id=rep.id,
            overflow=True,
            reason=AssignmentReason.FORCED,
            territory=territory,
            load_percentage=round(pct, 1),
        )

    return AssignmentResult(
        rep_id=rep.id,
        overflow=False,
        reason=AssignmentReason.MANUAL,
        territory=territory,
        load_percentage=round(pct, 1),
    )


def assign(
    territory: str,
    reps: Iterable[SalesRep],
    mode: AssignmentMode = AssignmentMode.AUTO,
    rep_id: Optional[str] = None,
    force: bool = False,
    urgency: Urgency = Urgency.MEDIUM,
    config: BalancerConfig = DEFAULT_BALANCER,
    deal_size: Optional[float] = None,
    allow_nearby: bool = False,
) -> AssignmentResult:
    """Dispatch to auto or manual assignment."""
    reps = list(reps)
    if deal_size is not None and deal_size < 0:
        raise InvalidInput(f"deal_size must be >= 0, got {deal_size}.")
    if mode == AssignmentMode.MANUAL:
        if not rep_id:
            raise InvalidInput("Manual assignment requires a rep_id.")
        return manual_assign(territory, reps, rep_id, force=force, config=config)
    return auto_assign(
        territory, reps,
        urgency=urgency, config=config, deal_size=deal_size, allow_nearby=allow_nearby,
    )


# ── Territory coverage ───────────────────────────────────────────────────────

def suggest_territory_reassignment(
    reps: Iterable[SalesRep],
    territories: Iterable[str],
    config: BalancerConfig = DEFAULT_BALANCER,
) -> dict[str, list[str]]:
    """
    Reps who could pick up an uncovered or overloaded territory.

    A territory needs help when nobody serves it or its reps average more than
    `reassignment_avg_load` open leads. Helpers are reps already working the
    same region but not this territory, least loaded first. Territories that
    need no help are left out of the result.
    """
    reps = list(reps)
    suggestions: dict[str, list[str]] = {}
    for territory in territories:
        serving = [rep for rep in reps if rep.serves(territory)]
        if serving:
            avg_load = sum(rep.current_load for rep in serving) / len(serving)
            if avg_load <= config.reassignment_avg_load:
                continue

        region = territory_region(territory, config)
        helpers = [
            rep for rep in reps
            if not rep.serves(territory)
            and region is not None
            and any(territory_region(t, config) == region for t in rep.territories)
        ]
        helpers.sort(key=lambda rep: (rep.current_load, rep.id))
        suggestions[territory] = [rep.id for rep in helpers[:config.max_reassignment_suggestions]]
        logger.debug("Territory %s needs cover; suggested: %s", territory, suggestions[territory])
    return suggestions
