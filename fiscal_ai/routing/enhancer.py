import asyncio
import logging
import time
from typing import List, Optional

from ..config import Settings, settings as default_settings
from ..exceptions import BudgetExceededError, FiscalAIError, RoutingTimeout, TierExecutionFailed
from .classifier import QueryClassifier
from .models import EnhancementAttempt, EnhancementOptions, EnhancementResult, Query
from .router import SmartRouter
from .scoring import SatisfactionScorer, default_satisfaction_scorer
from .tiers import Tier, baseline_cost, next_tier

logger = logging.getLogger(__name__)


class ProgressiveEnhancer:
    """Bounded escalation loop above the SmartRouter.

    Starts at the cheapest applicable tier, scores each answer and escalates
    along the cost-ordered chain until the answer is satisfying, the attempt
    limit is reached, or the next tier would not fit the remaining max cost.
    The best-scored answer so far is always a valid result.
    """

    def __init__(
        self,
        router: SmartRouter,
        classifier: QueryClassifier,
        scorer: SatisfactionScorer = default_satisfaction_scorer,
        config: Optional[Settings] = None,
    ):
        self.router = router
        self.classifier = classifier
        self.scorer = scorer
        self.config = config or default_settings

    def start_tier(self, query: Query) -> Tier:
        if query.options.force_tier is not None:
            return query.options.force_tier
        if query.options.urgent or self.classifier.is_urgent(query.text):
            return Tier.URGENT
        return Tier.SIMPLE

    async def enhance(self, query: Query, options: Optional[EnhancementOptions] = None) -> EnhancementResult:
        options = options or EnhancementOptions()
        deadline = options.deadline_seconds or self.config.request_deadline_seconds

        try:
            return await asyncio.wait_for(self._run(query, options), timeout=deadline)
        except asyncio.TimeoutError:
            logger.error(f"Progressive enhancement for {query.user_id} exceeded {deadline}s")
            raise RoutingTimeout(deadline)

    async def _run(self, query: Query, options: EnhancementOptions) -> EnhancementResult:
        start_time = time.time()
        max_attempts = options.max_attempts or self.config.enhancement_max_attempts
        threshold = (
            options.satisfaction_threshold
            if options.satisfaction_threshold is not None
            else self.config.enhancement_satisfaction_threshold
        )
        max_cost = options.max_cost if options.max_cost is not None else query.options.max_cost

        attempts: List[EnhancementAttempt] = []
        best: Optional[EnhancementAttempt] = None
        last_error: Optional[FiscalAIError] = None
        total_cost = 0.0
        tier: Optional[Tier] = self.start_tier(query)

        while tier is not None and len(attempts) < max_attempts:
            remaining = None if max_cost is None else max(0.0, max_cost - total_cost)
            attempt_query = query.with_options(force_tier=tier, max_cost=remaining)
            logger.debug(f"Enhancement attempt {len(attempts) + 1} for {query.user_id} at {tier.value}")

            try:
                answer = await self.router.route(attempt_query)
            except (TierExecutionFailed, RoutingTimeout) as e:
                total_cost += self.config.failed_attempt_cost
                attempts.append(EnhancementAttempt(
                    tier=tier, cumulative_cost=total_cost, error=str(e)
                ))
                last_error = e
                logger.warning(f"Attempt at {tier.value} failed, escalating: {e}")
                tier = self._next_affordable(tier, total_cost, max_cost)
                continue
            except BudgetExceededError as e:
                if not attempts:
                    raise
                logger.info(f"Stopping enhancement at {tier.value}: {e.reason}")
                break

            total_cost += answer.metadata.cost
            score = self.scorer(answer)
            attempt = EnhancementAttempt(
                tier=tier, answer=answer, satisfaction_score=score, cumulative_cost=total_cost
            )
            attempts.append(attempt)

            if best is None or score > best.satisfaction_score:
                best = attempt

            if score >= threshold:
                logger.info(f"Accepted {tier.value} answer for {query.user_id} (score {score:.2f})")
                break

            tier = self._next_affordable(tier, total_cost, max_cost)
            if tier is not None and len(attempts) < max_attempts:
                logger.info(f"Escalating to {tier.value} (score {score:.2f} < {threshold:.2f})")

        if best is None:
            raise last_error or TierExecutionFailed("enhancement", "no attempt was made")

        escalated = best is not attempts[0]
        final_answer = best.answer.model_copy(update={
            "metadata": best.answer.metadata.model_copy(update={"escalated": escalated})
        })

        return EnhancementResult(
            final_answer=final_answer,
            attempts=attempts,
            total_cost=round(total_cost, 6),
            satisfaction_score=best.satisfaction_score,
            escalations=len(attempts) - 1,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    @staticmethod
    def _next_affordable(tier: Tier, spent: float, max_cost: Optional[float]) -> Optional[Tier]:
        candidate = next_tier(tier)
        if candidate is None:
            return None
        if max_cost is not None and spent + baseline_cost(candidate) > max_cost:
            logger.info(f"Next tier {candidate.value} would exceed max cost {max_cost:.4f}")
            return None
        return candidate
