from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

from ..routing.models import AgentContext, Domain


class AgentType(str, Enum):
    FISCAL_ANALYST = "fiscal_analyst"
    COMPLIANCE = "compliance"
    STRATEGY = "strategy"


class AgentTask(BaseModel):
    """Input handed to one sub-agent"""
    query_text: str
    domain: Domain = Domain.GENERAL
    context: AgentContext = Field(default_factory=AgentContext)
    prior_analysis: Optional[str] = None


class AgentResponse(BaseModel):
    agent_type: AgentType
    content: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    recommendations: List[str] = Field(default_factory=list)
    processing_time_ms: float = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and bool(self.content)
