import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..agents.orchestrator import MultiAgentOrchestrator
from ..agents.prompts import render_context, system_prompt_for
from ..config import Settings, settings as default_settings
from ..context.base import ContextProvider
from ..exceptions import FiscalAIError, TierExecutionFailed
from ..llm.models import LLMResponse, ModelClient
from .models import AgentContext, Answer, AnswerMetadata, ExecutionPlan, Query, Source
from .tiers import TIER_PROFILES, ContextSource, Tier

logger = logging.getLogger(__name__)


class TierExecutor(ABC):
    """Produces an Answer for one tier"""

    tier: Tier

    @property
    def required_context(self):
        return TIER_PROFILES[self.tier].required_context

    @abstractmethod
    async def execute(self, query: Query, plan: ExecutionPlan) -> Answer:
        ...

    def _confidence(self, response: LLMResponse) -> float:
        if response.confidence_score is None:
            return TIER_PROFILES[self.tier].default_confidence
        return min(1.0, max(0.0, response.confidence_score))


class DirectModelExecutor(TierExecutor):
    """Simple tier: one concise model call, no context"""

    tier = Tier.SIMPLE

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def execute(self, query: Query, plan: ExecutionPlan) -> Answer:
        try:
            response = await self.model_client.complete(
                system_prompt_for(plan.domain, concise=True), query.text, temperature=0.2
            )
        except Exception as e:
            raise TierExecutionFailed(self.tier.value, str(e)) from e

        return Answer(
            text=response.content,
            confidence=self._confidence(response),
            sources=[Source(type="ai", title="Réponse rapide", reliability=0.7)],
            metadata=AnswerMetadata(tier=self.tier, domain=plan.domain),
        )


class ContextualModelExecutor(TierExecutor):
    """Moderate tier: fiscal profile summary plus one model call"""

    tier = Tier.MODERATE

    def __init__(
        self,
        model_client: ModelClient,
        fiscal_profile: Optional[ContextProvider] = None,
        config: Optional[Settings] = None,
    ):
        self.model_client = model_client
        self.fiscal_profile = fiscal_profile
        self.config = config or default_settings

    async def execute(self, query: Query, plan: ExecutionPlan) -> Answer:
        context = AgentContext()
        context_used: List[ContextSource] = []
        sources: List[Source] = []
        recommendations: List[str] = []
        fallback_used = False

        if plan.wants(ContextSource.FISCAL_PROFILE):
            if self.fiscal_profile is None:
                fallback_used = True
            else:
                try:
                    result = await asyncio.wait_for(
                        self.fiscal_profile.fetch(query.user_id, query.text),
                        timeout=self.config.provider_timeout_seconds,
                    )
                    context.fiscal_profile = result.data
                    context_used.append(ContextSource.FISCAL_PROFILE)
                    sources.extend(result.sources)
                    recommendations.extend(result.recommendations)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"Fiscal profile unavailable for {query.user_id}: {e!r}")
                    fallback_used = True

        prompt = query.text
        rendered = render_context(context)
        if rendered:
            prompt = f"{rendered}\n\nQuestion : {query.text}"

        try:
            response = await self.model_client.complete(
                system_prompt_for(plan.domain), prompt, temperature=0.3
            )
        except Exception as e:
            raise TierExecutionFailed(self.tier.value, str(e)) from e

        sources.append(Source(type="ai", title="Conseil personnalisé", reliability=0.75))
        return Answer(
            text=response.content,
            confidence=self._confidence(response),
            sources=sources,
            recommendations=recommendations,
            metadata=AnswerMetadata(
                tier=self.tier,
                context_used=context_used,
                fallback_used=fallback_used,
                domain=plan.domain,
            ),
        )


class OrchestratedExecutor(TierExecutor):
    """Urgent, Complex and WebResearch tiers, delegated to the multi-agent orchestrator"""

    def __init__(self, tier: Tier, orchestrator: MultiAgentOrchestrator):
        self.tier = tier
        self.orchestrator = orchestrator

    async def execute(self, query: Query, plan: ExecutionPlan) -> Answer:
        try:
            return await self.orchestrator.run(query, plan)
        except FiscalAIError:
            raise
        except Exception as e:
            raise TierExecutionFailed(self.tier.value, str(e)) from e


def build_executors(
    model_client: ModelClient,
    providers: Dict[ContextSource, ContextProvider],
    config: Optional[Settings] = None,
) -> Dict[Tier, TierExecutor]:
    config = config or default_settings
    orchestrator = MultiAgentOrchestrator(model_client, providers, config)
    return {
        Tier.SIMPLE: DirectModelExecutor(model_client),
        Tier.MODERATE: ContextualModelExecutor(
            model_client, providers.get(ContextSource.FISCAL_PROFILE), config
        ),
        Tier.URGENT: OrchestratedExecutor(Tier.URGENT, orchestrator),
        Tier.COMPLEX: OrchestratedExecutor(Tier.COMPLEX, orchestrator),
        Tier.WEB_RESEARCH: OrchestratedExecutor(Tier.WEB_RESEARCH, orchestrator),
    }
