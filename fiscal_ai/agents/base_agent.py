import asyncio
import logging
import time
from abc import ABC, abstractmethod

from ..llm.models import ModelClient
from .models import AgentType, AgentTask, AgentResponse
from .prompts import extract_recommendations, render_context

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Specialised sub-agent: one model call with a role-specific prompt"""

    temperature = 0.3
    default_confidence = 0.7

    def __init__(self, agent_type: AgentType, model_client: ModelClient):
        self.agent_type = agent_type
        self.model_client = model_client

    @abstractmethod
    def get_system_prompt(self, task: AgentTask) -> str:
        """Get system prompt for this agent"""
        pass

    def build_user_prompt(self, task: AgentTask) -> str:
        parts = [f"Question : {task.query_text}"]
        context = render_context(task.context)
        if context:
            parts.append(context)
        if task.prior_analysis:
            parts.append(f"Analyse préalable :\n{task.prior_analysis}")
        return "\n\n".join(parts)

    async def process(self, task: AgentTask) -> AgentResponse:
        response = await self.model_client.complete(
            self.get_system_prompt(task),
            self.build_user_prompt(task),
            temperature=self.temperature,
        )
        confidence = response.confidence_score
        if confidence is None:
            confidence = self.default_confidence

        return AgentResponse(
            agent_type=self.agent_type,
            content=response.content,
            confidence=min(1.0, max(0.0, confidence)),
            recommendations=extract_recommendations(response.content),
        )

    async def execute_with_timeout(self, task: AgentTask, timeout_seconds: float = 30.0) -> AgentResponse:
        """Execute agent processing with timeout; failures come back as an error response"""
        start_time = time.time()

        try:
            response = await asyncio.wait_for(self.process(task), timeout=timeout_seconds)
            response.processing_time_ms = (time.time() - start_time) * 1000
            logger.debug(f"{self.agent_type.value} processed in {response.processing_time_ms:.1f}ms")
            return response

        except asyncio.TimeoutError:
            logger.warning(f"{self.agent_type.value} timed out after {timeout_seconds}s")
            return AgentResponse(
                agent_type=self.agent_type,
                error=f"timed out after {timeout_seconds}s",
                processing_time_ms=(time.time() - start_time) * 1000
            )

        except Exception as e:
            logger.error(f"{self.agent_type.value} processing error: {e}")
            return AgentResponse(
                agent_type=self.agent_type,
                error=str(e),
                processing_time_ms=(time.time() - start_time) * 1000
            )
