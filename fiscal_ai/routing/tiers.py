from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..config import Settings, settings as default_settings


class Tier(str, Enum):
    SIMPLE = "SIMPLE"
    MODERATE = "MODERATE"
    COMPLEX = "COMPLEX"
    URGENT = "URGENT"
    WEB_RESEARCH = "WEB_RESEARCH"
    # Accounting-only markers, never returned by the classifier
    FALLBACK = "FALLBACK"
    ERROR = "ERROR"

    @property
    def is_accounting_only(self) -> bool:
        return self in (Tier.FALLBACK, Tier.ERROR)


class ContextSource(str, Enum):
    FISCAL_PROFILE = "fiscal_profile"
    MEMORY = "memory"
    WEB_SEARCH = "web_search"
    WORKSPACE = "workspace"


@dataclass(frozen=True)
class TierProfile:
    """Static cost and latency expectations for a tier"""
    tier: Tier
    baseline_cost: float  # EUR
    latency_band: Tuple[float, float]  # seconds
    default_confidence: float
    required_context: Tuple[ContextSource, ...] = ()


TIER_PROFILES: Dict[Tier, TierProfile] = {
    Tier.SIMPLE: TierProfile(Tier.SIMPLE, 0.001, (1.0, 5.0), 0.85),
    Tier.MODERATE: TierProfile(
        Tier.MODERATE, 0.005, (2.0, 10.0), 0.6,
        (ContextSource.FISCAL_PROFILE,),
    ),
    Tier.URGENT: TierProfile(
        Tier.URGENT, 0.015, (3.0, 20.0), 0.9,
        (ContextSource.FISCAL_PROFILE, ContextSource.MEMORY),
    ),
    Tier.COMPLEX: TierProfile(
        Tier.COMPLEX, 0.025, (10.0, 60.0), 0.8,
        (ContextSource.FISCAL_PROFILE, ContextSource.MEMORY, ContextSource.WORKSPACE),
    ),
    Tier.WEB_RESEARCH: TierProfile(
        Tier.WEB_RESEARCH, 0.035, (15.0, 120.0), 0.8,
        (ContextSource.FISCAL_PROFILE, ContextSource.MEMORY,
         ContextSource.WEB_SEARCH, ContextSource.WORKSPACE),
    ),
    Tier.FALLBACK: TierProfile(Tier.FALLBACK, 0.0, (0.0, 0.0), 0.0),
    Tier.ERROR: TierProfile(Tier.ERROR, 0.0, (0.0, 0.0), 0.0),
}

# Escalation order, strictly increasing in baseline cost
ESCALATION_CHAIN: List[Tier] = [Tier.SIMPLE, Tier.MODERATE, Tier.COMPLEX, Tier.WEB_RESEARCH]

ROUTABLE_TIERS: List[Tier] = sorted(
    (t for t in Tier if not t.is_accounting_only),
    key=lambda t: TIER_PROFILES[t].baseline_cost,
)


def baseline_cost(tier: Tier) -> float:
    return TIER_PROFILES[tier].baseline_cost


def most_expensive_tier() -> Tier:
    return ROUTABLE_TIERS[-1]


def next_tier(tier: Tier) -> Optional[Tier]:
    """Cheapest escalation tier that costs more than `tier`, or None at the top"""
    current = baseline_cost(tier)
    for candidate in ESCALATION_CHAIN:
        if baseline_cost(candidate) > current:
            return candidate
    return None


def cheaper_fitting_tier(tier: Tier, max_cost: float) -> Optional[Tier]:
    """Most expensive routable tier no pricier than `tier` whose baseline fits `max_cost`"""
    ceiling = baseline_cost(tier)
    fitting = [
        t for t in ESCALATION_CHAIN
        if baseline_cost(t) <= ceiling and baseline_cost(t) <= max_cost
    ]
    return fitting[-1] if fitting else None


def tier_deadline(tier: Tier, config: Optional[Settings] = None) -> float:
    config = config or default_settings
    return {
        Tier.SIMPLE: config.simple_deadline_seconds,
        Tier.MODERATE: config.moderate_deadline_seconds,
        Tier.URGENT: config.urgent_deadline_seconds,
        Tier.COMPLEX: config.complex_deadline_seconds,
        Tier.WEB_RESEARCH: config.web_research_deadline_seconds,
    }.get(tier, config.request_deadline_seconds)
