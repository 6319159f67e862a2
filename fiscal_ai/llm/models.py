from abc import ABC, abstractmethod
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from enum import Enum


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    role: MessageRole
    content: str


class LLMRequest(BaseModel):
    messages: List[Message]
    max_tokens: int = Field(default=600, le=2000)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    system_prompt: Optional[str] = None


class LLMResponse(BaseModel):
    content: str
    usage_tokens: int = 0
    response_time_ms: float = 0
    model_used: str = ""
    confidence_score: Optional[float] = None


class HealthStatus(BaseModel):
    service: str
    status: str  # "healthy", "degraded", "unhealthy"
    response_time_ms: float
    concurrent_requests: int
    last_check: float
    details: Optional[Dict[str, Any]] = None


class ModelClient(ABC):
    """Opaque question-answering capability used by every tier"""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 600,
    ) -> LLMResponse:
        ...

    async def health_check(self) -> HealthStatus:
        return HealthStatus(
            service=type(self).__name__,
            status="healthy",
            response_time_ms=0.0,
            concurrent_requests=0,
            last_check=0.0,
        )

    async def close(self):
        return None
