from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional

from ..routing.models import Answer, EnhancementResult, QueryOptions, Source
from ..routing.tiers import Tier


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoutingOptionsBody(CamelModel):
    max_cost: Optional[float] = Field(default=None, ge=0.0)
    force_route: Optional[Tier] = None
    urgent: bool = False
    skip_memory: bool = False
    skip_context: bool = False
    skip_web_search: bool = False
    skip_workspace: bool = False

    @field_validator("force_route")
    @classmethod
    def routable_only(cls, value: Optional[Tier]) -> Optional[Tier]:
        if value is not None and value.is_accounting_only:
            raise ValueError(f"{value.value} cannot be requested")
        return value

    def to_query_options(self, feature: str) -> QueryOptions:
        return QueryOptions(
            force_tier=self.force_route,
            max_cost=self.max_cost,
            urgent=self.urgent,
            skip_memory=self.skip_memory,
            skip_context=self.skip_context,
            skip_web_search=self.skip_web_search,
            skip_workspace=self.skip_workspace,
            feature=feature,
        )


class AdviceRequest(CamelModel):
    query: str = Field(min_length=1, max_length=4000)
    user_id: str = Field(min_length=1)
    options: RoutingOptionsBody = Field(default_factory=RoutingOptionsBody)


class SourceBody(CamelModel):
    type: str
    title: str
    locator: Optional[str] = None
    reliability: float

    @classmethod
    def from_source(cls, source: Source) -> "SourceBody":
        return cls(**source.model_dump())


class AdviceMetadata(CamelModel):
    tier: Tier
    cost: float
    processing_time: float
    confidence: float
    used_context: bool
    used_memory: bool
    escalated: bool
    fallback_used: bool
    routing_reason: Optional[str] = None
    domain: str


class AdviceResponse(CamelModel):
    answer: str
    confidence: float
    sources: List[SourceBody]
    recommendations: List[str]
    metadata: AdviceMetadata

    @classmethod
    def from_answer(cls, answer: Answer) -> "AdviceResponse":
        meta = answer.metadata
        return cls(
            answer=answer.text,
            confidence=answer.confidence,
            sources=[SourceBody.from_source(s) for s in answer.sources],
            recommendations=answer.recommendations,
            metadata=AdviceMetadata(
                tier=meta.tier,
                cost=meta.cost,
                processing_time=round(meta.processing_time_ms, 1),
                confidence=answer.confidence,
                used_context=meta.used_context,
                used_memory=meta.used_memory,
                escalated=meta.escalated,
                fallback_used=meta.fallback_used,
                routing_reason=meta.routing_reason.value if meta.routing_reason else None,
                domain=meta.domain.value,
            ),
        )


class EnhancementOptionsBody(CamelModel):
    max_attempts: Optional[int] = Field(default=None, ge=1, le=4)
    max_cost: Optional[float] = Field(default=None, ge=0.0)
    satisfaction_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    skip_memory: bool = False


class EnhancedAdviceRequest(CamelModel):
    query: str = Field(min_length=1, max_length=4000)
    user_id: str = Field(min_length=1)
    options: EnhancementOptionsBody = Field(default_factory=EnhancementOptionsBody)


class AttemptBody(CamelModel):
    tier: Tier
    satisfaction_score: float
    cumulative_cost: float
    error: Optional[str] = None


class EnhancementMetadata(CamelModel):
    attempts: int
    attempt_details: List[AttemptBody]
    escalations: int
    processing_time: float
    final_route: Tier


class EnhancedAdviceResponse(CamelModel):
    final_answer: str
    total_cost: float
    confidence: float
    enhancement_path: List[Tier]
    satisfaction_score: float
    sources: List[SourceBody]
    recommendations: List[str]
    metadata: EnhancementMetadata

    @classmethod
    def from_result(cls, result: EnhancementResult) -> "EnhancedAdviceResponse":
        answer = result.final_answer
        return cls(
            final_answer=answer.text,
            total_cost=result.total_cost,
            confidence=answer.confidence,
            enhancement_path=result.enhancement_path,
            satisfaction_score=result.satisfaction_score,
            sources=[SourceBody.from_source(s) for s in answer.sources],
            recommendations=answer.recommendations,
            metadata=EnhancementMetadata(
                attempts=len(result.attempts),
                attempt_details=[
                    AttemptBody(
                        tier=a.tier,
                        satisfaction_score=a.satisfaction_score,
                        cumulative_cost=a.cumulative_cost,
                        error=a.error,
                    )
                    for a in result.attempts
                ],
                escalations=result.escalations,
                processing_time=round(result.processing_time_ms, 1),
                final_route=result.final_tier,
            ),
        )


class MultiAgentContextBody(CamelModel):
    urgency: Optional[str] = Field(default=None, pattern="^(low|medium|high)$")
    requires_real_time_data: bool = False
    requires_workspace_data: Optional[bool] = None


class MultiAgentRequest(CamelModel):
    query: str = Field(min_length=1, max_length=4000)
    user_id: str = Field(min_length=1)
    context: MultiAgentContextBody = Field(default_factory=MultiAgentContextBody)
    max_cost: Optional[float] = Field(default=None, ge=0.0)


class MultiAgentMetadata(CamelModel):
    agents_used: List[str]
    execution_time: float
    query_complexity: Tier
    data_sources_used: List[str]
    fallback_used: bool
    cost: float


class MultiAgentResponse(CamelModel):
    answer: str
    confidence: float
    sources: List[SourceBody]
    recommendations: List[str]
    metadata: MultiAgentMetadata

    @classmethod
    def from_answer(cls, answer: Answer) -> "MultiAgentResponse":
        meta = answer.metadata
        return cls(
            answer=answer.text,
            confidence=answer.confidence,
            sources=[SourceBody.from_source(s) for s in answer.sources],
            recommendations=answer.recommendations,
            metadata=MultiAgentMetadata(
                agents_used=meta.agents_used,
                execution_time=round(meta.processing_time_ms, 1),
                query_complexity=meta.tier,
                data_sources_used=[s.value for s in meta.context_used],
                fallback_used=meta.fallback_used,
                cost=meta.cost,
            ),
        )


class BudgetUpdateRequest(CamelModel):
    user_id: str = Field(min_length=1)
    daily_limit: Optional[float] = Field(default=None, ge=0.0)
    monthly_limit: Optional[float] = Field(default=None, ge=0.0)


def camelize(data: Any) -> Any:
    """Recursively convert lowercase snake_case dict keys to camelCase; tier names are left as is"""
    if isinstance(data, dict):
        return {to_camel(k) if isinstance(k, str) and k.islower() else k: camelize(v) for k, v in data.items()}
    if isinstance(data, list):
        return [camelize(item) for item in data]
    return data
