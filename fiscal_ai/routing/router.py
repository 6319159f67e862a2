import asyncio
import logging
import time
from typing import Dict, Optional

from ..config import Settings, settings as default_settings
from ..cost_control.ledger import CostLedger, Reservation
from ..exceptions import (
    BudgetConflictError, BudgetExceededError, RoutingTimeout, TierExecutionFailed,
)
from .classifier import QueryClassifier
from .executors import TierExecutor
from .models import Answer, ExecutionPlan, Query, RoutingDecision, RoutingReason
from .tiers import (
    TIER_PROFILES, ContextSource, Tier, baseline_cost, cheaper_fitting_tier, tier_deadline,
)

logger = logging.getLogger(__name__)


class SmartRouter:
    """Routes one query to exactly one tier and accounts for it.

    Every call writes exactly one usage record: the spend on success, a
    minimal fixed charge on failure, or a zero-cost rejection when the
    budget pre-check refuses the request. Failed executions are never
    retried here.
    """

    def __init__(
        self,
        ledger: CostLedger,
        classifier: QueryClassifier,
        executors: Dict[Tier, TierExecutor],
        config: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.classifier = classifier
        self.executors = executors
        self.config = config or default_settings

    def decide(self, query: Query) -> RoutingDecision:
        """Classify the query and fit the tier under the caller's max cost"""
        options = query.options
        decision = self.classifier.decide(query.text, options)
        max_cost = options.max_cost

        if max_cost is None or decision.estimated_cost <= max_cost:
            return decision

        if decision.reason == RoutingReason.FORCED:
            raise BudgetConflictError(
                f"Forced tier {decision.tier.value} costs {decision.estimated_cost:.4f} EUR, "
                f"above the max cost of {max_cost:.4f} EUR",
                suggestion="Raise max cost or let the router pick the tier",
            )

        downgraded = cheaper_fitting_tier(decision.tier, max_cost)
        if downgraded is None:
            raise BudgetExceededError(
                f"No tier fits the max cost of {max_cost:.4f} EUR",
                suggestion="Raise max cost to at least the cheapest tier's cost",
            )

        logger.info(f"Downgrading {decision.tier.value} to {downgraded.value} to fit max cost {max_cost:.4f}")
        return RoutingDecision(
            tier=downgraded,
            reason=RoutingReason.DOWNGRADED,
            estimated_cost=baseline_cost(downgraded),
            domain=decision.domain,
            classified_tier=decision.tier,
        )

    def plan_for(self, query: Query, decision: RoutingDecision) -> ExecutionPlan:
        options = query.options
        skipped = set()
        if options.skip_context:
            skipped.update((ContextSource.FISCAL_PROFILE, ContextSource.WEB_SEARCH, ContextSource.WORKSPACE))
        if options.skip_memory:
            skipped.add(ContextSource.MEMORY)
        if options.skip_web_search:
            skipped.add(ContextSource.WEB_SEARCH)
        if options.skip_workspace:
            skipped.add(ContextSource.WORKSPACE)

        return ExecutionPlan(
            tier=decision.tier,
            context_sources=[
                s for s in TIER_PROFILES[decision.tier].required_context if s not in skipped
            ],
            domain=decision.domain,
            deadline_seconds=min(
                tier_deadline(decision.tier, self.config), self.config.request_deadline_seconds
            ),
        )

    async def route(self, query: Query) -> Answer:
        start_time = time.time()
        user_id = query.user_id
        feature = query.options.feature

        try:
            decision = self.decide(query)
        except BudgetExceededError as e:
            classified = self.classifier.quick_cost_estimate(query.text, query.options)
            await self.ledger.record_rejection(user_id, feature, classified, e.reason)
            e.remaining_budget = await self.ledger.remaining(user_id)
            raise

        tier = decision.tier
        logger.info(
            f"Routing query for {user_id} to {tier.value} "
            f"({decision.reason.value}, est. {decision.estimated_cost:.4f} EUR)"
        )

        executor = self.executors.get(tier)
        if executor is None:
            await self.ledger.record_spend(
                user_id, feature, Tier.ERROR, decision.estimated_cost, 0.0, 0.0, False,
                error_message=f"no executor for {tier.value}",
            )
            raise TierExecutionFailed(tier.value, "no executor registered")

        try:
            reservation = await self.ledger.reserve(user_id, decision.estimated_cost)
        except BudgetExceededError as e:
            await self.ledger.record_rejection(user_id, feature, decision.estimated_cost, e.reason)
            raise

        plan = self.plan_for(query, decision)

        try:
            answer = await asyncio.wait_for(
                executor.execute(query, plan), timeout=plan.deadline_seconds
            )
        except asyncio.TimeoutError:
            await self._record_failure(query, decision, reservation, start_time, "timeout")
            logger.error(f"{tier.value} timed out after {plan.deadline_seconds}s for {user_id}")
            raise RoutingTimeout(plan.deadline_seconds, tier.value)
        except asyncio.CancelledError:
            await asyncio.shield(
                self._record_failure(query, decision, reservation, start_time, "cancelled")
            )
            raise
        except TierExecutionFailed as e:
            await self._record_failure(query, decision, reservation, start_time, str(e))
            logger.error(f"{tier.value} execution failed for {user_id}: {e}")
            raise
        except Exception as e:
            await self._record_failure(query, decision, reservation, start_time, str(e))
            logger.error(f"{tier.value} execution failed for {user_id}: {e}")
            raise TierExecutionFailed(tier.value, str(e)) from e

        processing_time_ms = (time.time() - start_time) * 1000
        actual_cost = baseline_cost(tier)

        await self.ledger.record_spend(
            user_id, feature, tier, decision.estimated_cost, actual_cost,
            processing_time_ms, True, reservation=reservation,
        )

        return answer.model_copy(update={
            "metadata": answer.metadata.model_copy(update={
                "tier": tier,
                "cost": actual_cost,
                "processing_time_ms": processing_time_ms,
                "routing_reason": decision.reason,
                "domain": decision.domain,
            })
        })

    async def _record_failure(
        self,
        query: Query,
        decision: RoutingDecision,
        reservation: Reservation,
        start_time: float,
        error: str,
    ):
        await self.ledger.record_spend(
            query.user_id,
            query.options.feature,
            decision.tier,
            decision.estimated_cost,
            self.config.failed_attempt_cost,
            (time.time() - start_time) * 1000,
            False,
            reservation=reservation,
            error_message=error[:500],
        )
