import logging
import time
from typing import Any, Dict, Optional

from .agents.orchestrator import MultiAgentOrchestrator
from .config import Settings, settings as default_settings
from .context.base import ContextProvider
from .context.providers import (
    FiscalProfileProvider, MemoryContextProvider, WebSearchProvider, WorkspaceProvider,
)
from .cost_control.ledger import BudgetStatus, CostLedger
from .database.connection import DatabaseManager
from .exceptions import MemoryPersistenceFailed
from .llm.models import ModelClient
from .llm.ollama_client import OllamaClient
from .memory.manager import DeadLetterLog, SelectiveMemoryManager
from .routing.classifier import QueryClassifier
from .routing.enhancer import ProgressiveEnhancer
from .routing.executors import OrchestratedExecutor, build_executors
from .routing.models import Answer, EnhancementOptions, EnhancementResult, Query
from .routing.router import SmartRouter
from .routing.scoring import SatisfactionScorer, default_satisfaction_scorer
from .routing.tiers import ROUTABLE_TIERS, TIER_PROFILES, ContextSource, Tier

logger = logging.getLogger(__name__)


def multi_agent_tier(urgency: Optional[str] = None, requires_real_time_data: bool = False) -> Tier:
    if requires_real_time_data:
        return Tier.WEB_RESEARCH
    if urgency == "high":
        return Tier.URGENT
    return Tier.COMPLEX


class FiscalAdvisor:
    """Entry point for the three request shapes; owns the wired components"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        ledger: CostLedger,
        classifier: QueryClassifier,
        router: SmartRouter,
        enhancer: ProgressiveEnhancer,
        memory: SelectiveMemoryManager,
        model_client: ModelClient,
        providers: Dict[ContextSource, ContextProvider],
        config: Settings,
    ):
        self.db_manager = db_manager
        self.ledger = ledger
        self.classifier = classifier
        self.router = router
        self.enhancer = enhancer
        self.memory = memory
        self.model_client = model_client
        self.providers = providers
        self.config = config

    @property
    def orchestrator(self) -> Optional[MultiAgentOrchestrator]:
        for executor in self.router.executors.values():
            if isinstance(executor, OrchestratedExecutor):
                return executor.orchestrator
        return None

    async def advise(self, query: Query) -> Answer:
        answer = await self.router.route(query)
        self.memory.schedule(
            query.user_id, query.text, answer, opt_out=query.options.skip_memory
        )
        return answer

    async def enhance(self, query: Query, options: Optional[EnhancementOptions] = None) -> EnhancementResult:
        result = await self.enhancer.enhance(query, options)
        self.memory.schedule(
            query.user_id, query.text, result.final_answer, opt_out=query.options.skip_memory
        )
        return result

    async def multi_agent(
        self,
        query: Query,
        urgency: Optional[str] = None,
        requires_real_time_data: bool = False,
        requires_workspace_data: Optional[bool] = None,
    ) -> Answer:
        tier = multi_agent_tier(urgency, requires_real_time_data)
        changes: Dict[str, Any] = {"force_tier": tier}
        if requires_workspace_data is False:
            changes["skip_workspace"] = True
        return await self.advise(query.with_options(**changes))

    def capabilities(self) -> Dict[str, Any]:
        orchestrator = self.orchestrator
        return {
            "tiers": [
                {
                    "tier": tier.value,
                    "baseline_cost": TIER_PROFILES[tier].baseline_cost,
                    "latency_band_seconds": list(TIER_PROFILES[tier].latency_band),
                    "context": [s.value for s in TIER_PROFILES[tier].required_context],
                    "available": tier in self.router.executors,
                }
                for tier in ROUTABLE_TIERS
            ],
            "providers": sorted(source.value for source in self.providers),
            "multi_agent": orchestrator.capabilities() if orchestrator else None,
            "enhancement": {
                "max_attempts": self.config.enhancement_max_attempts,
                "satisfaction_threshold": self.config.enhancement_satisfaction_threshold,
            },
        }

    async def cost_analytics(self, user_id: str, days: int = 30) -> Dict[str, Any]:
        analytics = await self.ledger.analytics(user_id, days)
        status = await self.ledger.budget_status(user_id)
        analytics["budget"] = status.to_dict()
        return analytics

    async def memory_stats(self, user_id: str) -> Dict[str, Any]:
        return await self.memory.memory_stats(user_id)

    async def set_budget(
        self, user_id: str, daily_limit: Optional[float] = None, monthly_limit: Optional[float] = None
    ) -> BudgetStatus:
        return await self.ledger.set_budget(user_id, daily_limit, monthly_limit)

    async def health(self) -> Dict[str, Any]:
        database = await self.db_manager.health_check()
        model = await self.model_client.health_check()
        return {
            "database": database,
            "model": model.model_dump(),
            "dead_letters": self.memory.dead_letters.status(),
            "pending_memory_writes": self.memory.pending,
            "timestamp": time.time(),
        }

    async def shutdown(self):
        await self.memory.drain()
        for provider in self.providers.values():
            await provider.close()
        await self.model_client.close()
        await self.db_manager.cleanup()
        logger.info("Fiscal advisor shut down")


def default_providers(config: Settings, db_manager: DatabaseManager) -> Dict[ContextSource, ContextProvider]:
    return {
        ContextSource.FISCAL_PROFILE: FiscalProfileProvider(config),
        ContextSource.MEMORY: MemoryContextProvider(db_manager, config.memory_context_entries),
        ContextSource.WEB_SEARCH: WebSearchProvider(config),
        ContextSource.WORKSPACE: WorkspaceProvider(config),
    }


async def build_advisor(
    config: Optional[Settings] = None,
    model_client: Optional[ModelClient] = None,
    providers: Optional[Dict[ContextSource, ContextProvider]] = None,
    db_manager: Optional[DatabaseManager] = None,
    scorer: SatisfactionScorer = default_satisfaction_scorer,
) -> FiscalAdvisor:
    """Wire every component once; callers keep the returned advisor for the process lifetime"""
    config = config or default_settings

    if db_manager is None:
        db_manager = DatabaseManager(config.database_url, echo=config.debug)
    if not db_manager.is_initialized():
        if not await db_manager.initialize():
            raise RuntimeError("Database initialization failed")
    await db_manager.create_tables()

    model_client = model_client or OllamaClient(config)
    if providers is None:
        providers = default_providers(config, db_manager)

    ledger = CostLedger(db_manager, config)
    classifier = QueryClassifier(config=config)
    router = SmartRouter(ledger, classifier, build_executors(model_client, providers, config), config)
    enhancer = ProgressiveEnhancer(router, classifier, scorer, config)
    memory = SelectiveMemoryManager(db_manager, DeadLetterLog(config.dead_letter_capacity))
    try:
        await memory.purge_expired()
    except MemoryPersistenceFailed as e:
        logger.warning(f"Expired memory purge skipped: {e}")

    logger.info(
        f"Fiscal advisor ready: {len(router.executors)} tiers, "
        f"providers={sorted(s.value for s in providers)}"
    )
    return FiscalAdvisor(
        db_manager, ledger, classifier, router, enhancer, memory, model_client, providers, config
    )
