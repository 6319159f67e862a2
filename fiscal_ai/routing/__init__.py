from .tiers import Tier, ContextSource, TierProfile, TIER_PROFILES, ESCALATION_CHAIN
from .models import (
    Domain, RoutingReason, QueryOptions, Query, RoutingDecision, Source,
    AnswerMetadata, Answer, AgentContext, ExecutionPlan,
    EnhancementOptions, EnhancementAttempt, EnhancementResult,
)
from .classifier import QueryClassifier
from .scoring import default_satisfaction_scorer

__all__ = [
    "Tier",
    "ContextSource",
    "TierProfile",
    "TIER_PROFILES",
    "ESCALATION_CHAIN",
    "Domain",
    "RoutingReason",
    "QueryOptions",
    "Query",
    "RoutingDecision",
    "Source",
    "AnswerMetadata",
    "Answer",
    "AgentContext",
    "ExecutionPlan",
    "EnhancementOptions",
    "EnhancementAttempt",
    "EnhancementResult",
    "QueryClassifier",
    "default_satisfaction_scorer",
]
