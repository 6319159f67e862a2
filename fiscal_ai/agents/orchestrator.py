import asyncio
import logging
from typing import Any, Dict, List, Optional, TypedDict
from langgraph.graph import StateGraph, END

from ..config import Settings, settings as default_settings
from ..context.base import ContextProvider, ProviderResult
from ..exceptions import ContextProviderUnavailable, TierExecutionFailed
from ..llm.models import ModelClient
from ..routing.models import (
    AgentContext, Answer, AnswerMetadata, Domain, ExecutionPlan, Query, Source,
)
from ..routing.tiers import ContextSource, Tier
from .base_agent import BaseAgent
from .fiscal_agents import ComplianceAgent, FiscalAnalystAgent, StrategyAgent
from .models import AgentResponse, AgentTask, AgentType
from .prompts import system_prompt_for

logger = logging.getLogger(__name__)

DIRECT_ANSWER_CONFIDENCE_CAP = 0.4
MAX_RECOMMENDATIONS = 5

SECTION_TITLES = {
    AgentType.FISCAL_ANALYST: "Analyse de votre situation",
    AgentType.COMPLIANCE: "Obligations et conformité",
    AgentType.STRATEGY: "Recommandations stratégiques",
}


class OrchestrationState(TypedDict, total=False):
    query: Query
    plan: ExecutionPlan
    context: AgentContext
    provider_results: List[ProviderResult]
    failed_providers: List[str]
    agent_responses: List[AgentResponse]
    answer: Answer


class MultiAgentOrchestrator:
    """Fan-out/fan-in executor for the Urgent, Complex and WebResearch tiers.

    Graph: collect_context -> run_agents -> synthesize -> END, with a branch
    from collect_context to direct_answer when every requested provider
    failed. Provider failures only degrade the answer; the run fails only
    when no model call succeeds.
    """

    def __init__(
        self,
        model_client: ModelClient,
        providers: Optional[Dict[ContextSource, ContextProvider]] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.model_client = model_client
        self.providers: Dict[ContextSource, ContextProvider] = dict(providers or {})

        self.agents: Dict[AgentType, BaseAgent] = {
            AgentType.FISCAL_ANALYST: FiscalAnalystAgent(model_client),
            AgentType.COMPLIANCE: ComplianceAgent(model_client),
            AgentType.STRATEGY: StrategyAgent(model_client),
        }

        self.workflow_graph = self._build_workflow_graph()

    def _build_workflow_graph(self):
        workflow = StateGraph(OrchestrationState)

        workflow.add_node("collect_context", self._collect_context_node)
        workflow.add_node("run_agents", self._run_agents_node)
        workflow.add_node("synthesize", self._synthesize_node)
        workflow.add_node("direct_answer", self._direct_answer_node)

        workflow.set_entry_point("collect_context")

        workflow.add_conditional_edges(
            "collect_context",
            self._route_from_context,
            {
                "run_agents": "run_agents",
                "direct_answer": "direct_answer",
            }
        )

        workflow.add_edge("run_agents", "synthesize")
        workflow.add_edge("synthesize", END)
        workflow.add_edge("direct_answer", END)

        return workflow.compile()

    @staticmethod
    def agent_stages(tier: Tier) -> List[List[AgentType]]:
        """Agents per stage; agents within a stage run concurrently"""
        if tier == Tier.URGENT:
            return [[AgentType.COMPLIANCE]]
        return [[AgentType.FISCAL_ANALYST], [AgentType.COMPLIANCE, AgentType.STRATEGY]]

    async def run(self, query: Query, plan: ExecutionPlan) -> Answer:
        logger.info(
            f"Orchestrating {plan.tier.value} for {query.user_id} "
            f"with sources {[s.value for s in plan.context_sources]}"
        )
        result = await self.workflow_graph.ainvoke({"query": query, "plan": plan})
        return result["answer"]

    # Nodes

    async def _collect_context_node(self, state: OrchestrationState) -> Dict[str, Any]:
        query = state["query"]
        plan = state["plan"]

        requested = list(plan.context_sources)
        results = await asyncio.gather(
            *(self._fetch(source, query) for source in requested),
            return_exceptions=True,
        )

        provider_results: List[ProviderResult] = []
        failed: List[str] = []
        for source, result in zip(requested, results):
            if isinstance(result, ProviderResult):
                provider_results.append(result)
            else:
                failed.append(source.value)
                logger.warning(f"Context provider {source.value} unavailable: {result}")

        context = AgentContext()
        for result in provider_results:
            if result.source == ContextSource.FISCAL_PROFILE:
                context.fiscal_profile = result.data
            elif result.source == ContextSource.MEMORY:
                context.memory_summary = result.data
            elif result.source == ContextSource.WEB_SEARCH:
                context.web_results = result.data
            elif result.source == ContextSource.WORKSPACE:
                context.workspace_data = result.data

        return {"context": context, "provider_results": provider_results, "failed_providers": failed}

    async def _fetch(self, source: ContextSource, query: Query) -> ProviderResult:
        provider = self.providers.get(source)
        if provider is None:
            raise ContextProviderUnavailable(source.value, "no provider registered")
        try:
            return await asyncio.wait_for(
                provider.fetch(query.user_id, query.text),
                timeout=self.config.provider_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ContextProviderUnavailable(
                source.value, f"timed out after {self.config.provider_timeout_seconds}s"
            )

    def _route_from_context(self, state: OrchestrationState) -> str:
        requested = state["plan"].context_sources
        if requested and not state.get("provider_results"):
            return "direct_answer"
        return "run_agents"

    async def _run_agents_node(self, state: OrchestrationState) -> Dict[str, Any]:
        query = state["query"]
        plan = state["plan"]
        timeout = self.config.provider_timeout_seconds * 6

        responses: List[AgentResponse] = []
        prior_analysis: Optional[str] = None

        for stage in self.agent_stages(plan.tier):
            task = AgentTask(
                query_text=query.text,
                domain=plan.domain,
                context=state["context"],
                prior_analysis=prior_analysis,
            )
            stage_responses = await asyncio.gather(
                *(self.agents[agent_type].execute_with_timeout(task, timeout) for agent_type in stage)
            )
            responses.extend(stage_responses)

            succeeded = [r.content for r in stage_responses if r.succeeded]
            if succeeded:
                prior_analysis = "\n\n".join(succeeded)

        if not any(r.succeeded for r in responses):
            errors = "; ".join(f"{r.agent_type.value}: {r.error}" for r in responses)
            raise TierExecutionFailed(plan.tier.value, f"every agent failed ({errors})")

        return {"agent_responses": responses}

    async def _synthesize_node(self, state: OrchestrationState) -> Dict[str, Any]:
        plan = state["plan"]
        requested = plan.context_sources
        provider_results = state.get("provider_results", [])
        succeeded = [r for r in state["agent_responses"] if r.succeeded]

        if len(succeeded) == 1:
            text = succeeded[0].content
        else:
            text = "\n\n".join(
                f"## {SECTION_TITLES[r.agent_type]}\n{r.content.strip()}" for r in succeeded
            )

        provider_ratio = len(provider_results) / len(requested) if requested else 1.0
        agent_confidences = [r.confidence for r in succeeded]
        agreement = 1.0 - (max(agent_confidences) - min(agent_confidences))
        confidence = 0.5 + 0.25 * provider_ratio + 0.25 * agreement

        sources: List[Source] = []
        recommendations: List[str] = []
        for result in provider_results:
            sources.extend(result.sources)
            recommendations.extend(result.recommendations)
        for response in succeeded:
            recommendations.extend(response.recommendations)
        sources.append(Source(type="ai", title="Analyse multi-agents", reliability=round(confidence, 2)))

        answer = Answer(
            text=text,
            confidence=round(min(1.0, confidence), 4),
            sources=sources,
            recommendations=_dedupe(recommendations)[:MAX_RECOMMENDATIONS],
            metadata=AnswerMetadata(
                tier=plan.tier,
                agents_used=[r.agent_type.value for r in succeeded],
                context_used=[r.source for r in provider_results],
                fallback_used=bool(state.get("failed_providers")),
                domain=plan.domain,
            ),
        )
        return {"answer": answer}

    async def _direct_answer_node(self, state: OrchestrationState) -> Dict[str, Any]:
        query = state["query"]
        plan = state["plan"]
        logger.warning(f"All context providers failed for {plan.tier.value}; answering from the query alone")

        try:
            response = await self.model_client.complete(
                system_prompt_for(plan.domain), query.text, temperature=0.3
            )
        except Exception as e:
            raise TierExecutionFailed(plan.tier.value, str(e)) from e

        confidence = response.confidence_score if response.confidence_score is not None else DIRECT_ANSWER_CONFIDENCE_CAP
        answer = Answer(
            text=response.content,
            confidence=min(DIRECT_ANSWER_CONFIDENCE_CAP, max(0.0, confidence)),
            sources=[Source(type="ai", title="Réponse directe", reliability=DIRECT_ANSWER_CONFIDENCE_CAP)],
            metadata=AnswerMetadata(
                tier=plan.tier,
                fallback_used=True,
                domain=plan.domain,
            ),
        )
        return {"answer": answer}

    def capabilities(self) -> Dict[str, Any]:
        return {
            "agents": [agent_type.value for agent_type in self.agents],
            "providers": sorted(source.value for source in self.providers),
            "execution_modes": {
                tier.value: [[a.value for a in stage] for stage in self.agent_stages(tier)]
                for tier in (Tier.URGENT, Tier.COMPLEX, Tier.WEB_RESEARCH)
            },
            "fallback": "direct_answer",
        }


def _dedupe(items: List[str]) -> List[str]:
    seen = set()
    unique = []
    for item in items:
        key = item.strip().lower()
        if key and key not in seen:
            seen.add(key)
            unique.append(item.strip())
    return unique
