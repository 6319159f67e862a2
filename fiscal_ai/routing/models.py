from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, List, Optional
from enum import Enum
import time

from .tiers import Tier, ContextSource


class Domain(str, Enum):
    COMPLIANCE = "COMPLIANCE"
    FISCAL = "FISCAL"
    CALCULATION = "CALCULATION"
    STRATEGY = "STRATEGY"
    GENERAL = "GENERAL"


class RoutingReason(str, Enum):
    CLASSIFIED = "classified"
    FORCED = "forced"
    URGENCY = "urgency"
    DOWNGRADED = "downgraded"


class QueryOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    force_tier: Optional[Tier] = None
    max_cost: Optional[float] = Field(default=None, ge=0.0)
    urgent: bool = False
    skip_memory: bool = False
    skip_context: bool = False
    skip_web_search: bool = False
    skip_workspace: bool = False
    feature: str = "fiscal-advice"


class Query(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    options: QueryOptions = Field(default_factory=QueryOptions)

    def with_options(self, **changes: Any) -> "Query":
        return self.model_copy(update={"options": self.options.model_copy(update=changes)})


class RoutingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: Tier
    reason: RoutingReason
    estimated_cost: float
    domain: Domain = Domain.GENERAL
    classified_tier: Optional[Tier] = None


class Source(BaseModel):
    type: str  # web, workspace, platform, memory, ai
    title: str
    locator: Optional[str] = None
    reliability: float = Field(default=0.5, ge=0.0, le=1.0)


class AnswerMetadata(BaseModel):
    tier: Tier
    cost: float = 0.0
    processing_time_ms: float = 0.0
    escalated: bool = False
    agents_used: List[str] = Field(default_factory=list)
    context_used: List[ContextSource] = Field(default_factory=list)
    fallback_used: bool = False
    routing_reason: Optional[RoutingReason] = None
    domain: Domain = Domain.GENERAL

    @property
    def used_context(self) -> bool:
        return any(source != ContextSource.MEMORY for source in self.context_used)

    @property
    def used_memory(self) -> bool:
        return ContextSource.MEMORY in self.context_used


class Answer(BaseModel):
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    sources: List[Source] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    metadata: AnswerMetadata


class AgentContext(BaseModel):
    """Optional data attached to a query before execution; every field may be missing"""
    fiscal_profile: Optional[Dict[str, Any]] = None
    memory_summary: Optional[str] = None
    web_results: Optional[List[Dict[str, Any]]] = None
    workspace_data: Optional[Dict[str, Any]] = None


class ExecutionPlan(BaseModel):
    """Which context sources a tier executor may fetch for one query"""
    model_config = ConfigDict(frozen=True)

    tier: Tier
    context_sources: List[ContextSource] = Field(default_factory=list)
    domain: Domain = Domain.GENERAL
    deadline_seconds: float = 60.0

    def wants(self, source: ContextSource) -> bool:
        return source in self.context_sources


class EnhancementOptions(BaseModel):
    max_attempts: Optional[int] = Field(default=None, ge=1)
    max_cost: Optional[float] = Field(default=None, ge=0.0)
    satisfaction_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    deadline_seconds: Optional[float] = Field(default=None, gt=0.0)


class EnhancementAttempt(BaseModel):
    tier: Tier
    answer: Optional[Answer] = None
    satisfaction_score: float = 0.0
    cumulative_cost: float = 0.0
    error: Optional[str] = None


class EnhancementResult(BaseModel):
    final_answer: Answer
    attempts: List[EnhancementAttempt]
    total_cost: float
    satisfaction_score: float
    escalations: int
    processing_time_ms: float
    created_at: float = Field(default_factory=time.time)

    @property
    def enhancement_path(self) -> List[Tier]:
        return [attempt.tier for attempt in self.attempts]

    @property
    def final_tier(self) -> Tier:
        return self.final_answer.metadata.tier
