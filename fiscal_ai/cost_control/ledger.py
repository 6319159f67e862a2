import asyncio
import logging
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..config import Settings, settings as default_settings
from ..database.connection import DatabaseManager
from ..database.models import utcnow
from ..database.repositories import BudgetRepository, UsageRepository
from ..exceptions import BudgetExceededError
from ..routing.tiers import Tier, baseline_cost, most_expensive_tier

logger = logging.getLogger(__name__)


class AlertLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class BudgetAlert:
    """Budget threshold crossing"""
    user_id: str
    level: AlertLevel
    budget_type: str  # daily, monthly
    threshold: float
    current_spend: float
    budget_limit: float
    utilization: float
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class AffordabilityCheck:
    allowed: bool
    reason: str
    remaining_budget: float


@dataclass
class Reservation:
    """Estimated cost held against a user's budget while a request is in flight"""
    user_id: str
    amount: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


@dataclass
class BudgetStatus:
    user_id: str
    daily_limit: float
    daily_spent: float
    daily_remaining: float
    daily_utilization: float
    monthly_limit: float
    monthly_spent: float
    monthly_remaining: float
    monthly_utilization: float
    in_flight: float = 0.0
    alerts: List[BudgetAlert] = field(default_factory=list)

    @property
    def remaining_budget(self) -> float:
        return max(0.0, min(self.daily_remaining, self.monthly_remaining))

    @property
    def over_budget(self) -> bool:
        return self.remaining_budget <= 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "daily_limit": self.daily_limit,
            "daily_spent": round(self.daily_spent, 6),
            "daily_remaining": round(self.daily_remaining, 6),
            "daily_utilization": round(self.daily_utilization, 4),
            "monthly_limit": self.monthly_limit,
            "monthly_spent": round(self.monthly_spent, 6),
            "monthly_remaining": round(self.monthly_remaining, 6),
            "monthly_utilization": round(self.monthly_utilization, 4),
            "remaining_budget": round(self.remaining_budget, 6),
            "in_flight": round(self.in_flight, 6),
            "over_budget": self.over_budget,
            "alerts": [
                {
                    "level": alert.level.value,
                    "budget_type": alert.budget_type,
                    "threshold": alert.threshold,
                    "utilization": round(alert.utilization, 4),
                    "timestamp": alert.timestamp.isoformat(),
                }
                for alert in self.alerts
            ],
        }


def _utilization(spent: float, limit: float) -> float:
    if limit <= 0:
        return 1.0 if spent > 0 else 0.0
    return spent / limit


def _alert_level(threshold: float) -> AlertLevel:
    if threshold >= 0.95:
        return AlertLevel.CRITICAL
    if threshold >= 0.7:
        return AlertLevel.WARNING
    return AlertLevel.INFO


class CostLedger:
    """Durable per-user spend accounting and budget enforcement.

    Remaining budget is never cached: it is derived on every check from the
    usage_records table for the current day and month. Checks and writes for
    the same user are serialized with a per-user lock, and estimated costs of
    requests still in flight are held as reservations so that concurrent
    requests cannot jointly overspend.
    """

    def __init__(self, db_manager: DatabaseManager, config: Optional[Settings] = None):
        self.db_manager = db_manager
        self.config = config or default_settings

        self._locks: Dict[str, _UserLock] = {}
        self._reservations: Dict[str, Dict[str, Reservation]] = {}

        self.recent_alerts: Deque[BudgetAlert] = deque(maxlen=100)

        logger.info(
            f"Cost ledger initialized: default daily={self.config.default_daily_budget:.2f} EUR, "
            f"monthly={self.config.default_monthly_budget:.2f} EUR"
        )

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        # Entries live only while a coroutine holds or waits on the lock
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[user_id]

    @property
    def tracked_users(self) -> int:
        return len(self._locks)

    def in_flight(self, user_id: str) -> float:
        return sum(r.amount for r in self._reservations.get(user_id, {}).values())

    @staticmethod
    def _period_starts(now: datetime) -> Tuple[datetime, datetime]:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = day_start.replace(day=1)
        return day_start, month_start

    async def _status(self, user_id: str) -> BudgetStatus:
        now = utcnow()
        day_start, month_start = self._period_starts(now)

        async with self.db_manager.get_session() as session:
            budget = await BudgetRepository(session).get(user_id)
            usage = UsageRepository(session)
            daily_spent = await usage.sum_spend_since(user_id, day_start)
            monthly_spent = await usage.sum_spend_since(user_id, month_start)

        daily_limit = budget.daily_limit if budget else self.config.default_daily_budget
        monthly_limit = budget.monthly_limit if budget else self.config.default_monthly_budget

        return BudgetStatus(
            user_id=user_id,
            daily_limit=daily_limit,
            daily_spent=daily_spent,
            daily_remaining=max(0.0, daily_limit - daily_spent),
            daily_utilization=_utilization(daily_spent, daily_limit),
            monthly_limit=monthly_limit,
            monthly_spent=monthly_spent,
            monthly_remaining=max(0.0, monthly_limit - monthly_spent),
            monthly_utilization=_utilization(monthly_spent, monthly_limit),
            in_flight=self.in_flight(user_id),
            alerts=[a for a in self.recent_alerts if a.user_id == user_id],
        )

    def _evaluate(self, status: BudgetStatus, estimated_cost: float) -> AffordabilityCheck:
        available = max(0.0, status.remaining_budget - status.in_flight)

        if estimated_cost <= available:
            return AffordabilityCheck(True, "within_budget", available)

        if status.daily_remaining - status.in_flight < estimated_cost:
            reason = (
                f"Daily budget exceeded: {estimated_cost:.4f} EUR requested, "
                f"{available:.4f} EUR remaining today"
            )
        else:
            reason = (
                f"Monthly budget exceeded: {estimated_cost:.4f} EUR requested, "
                f"{available:.4f} EUR remaining this month"
            )
        return AffordabilityCheck(False, reason, available)

    async def can_afford(self, user_id: str, estimated_cost: float) -> AffordabilityCheck:
        """Check, without holding anything, whether the user can pay `estimated_cost`"""
        async with self._user_lock(user_id):
            status = await self._status(user_id)
            return self._evaluate(status, estimated_cost)

    async def reserve(self, user_id: str, estimated_cost: float) -> Reservation:
        """Atomically check affordability and hold the estimated cost.

        Raises BudgetExceededError when the cost does not fit.
        """
        async with self._user_lock(user_id):
            status = await self._status(user_id)
            check = self._evaluate(status, estimated_cost)
            if not check.allowed:
                logger.info(f"Budget check rejected for {user_id}: {check.reason}")
                raise BudgetExceededError(check.reason, check.remaining_budget)

            reservation = Reservation(user_id=user_id, amount=estimated_cost)
            self._reservations.setdefault(user_id, {})[reservation.id] = reservation
            logger.debug(f"Reserved {estimated_cost:.4f} EUR for {user_id} ({reservation.id})")
            return reservation

    def release(self, reservation: Optional[Reservation]):
        if reservation is None:
            return
        held = self._reservations.get(reservation.user_id)
        if held is not None:
            held.pop(reservation.id, None)
            if not held:
                del self._reservations[reservation.user_id]

    async def record_spend(
        self,
        user_id: str,
        feature: str,
        tier: Tier,
        estimated_cost: float,
        actual_cost: float,
        processing_time_ms: float,
        success: bool,
        reservation: Optional[Reservation] = None,
        error_message: Optional[str] = None,
    ) -> List[BudgetAlert]:
        """Append one usage record and release the matching reservation.

        Returns the budget alerts raised by this spend.
        """
        async with self._user_lock(user_id):
            try:
                before = await self._status(user_id) if actual_cost > 0 else None

                async with self.db_manager.get_session() as session:
                    await UsageRepository(session).append({
                        "user_id": user_id,
                        "feature": feature,
                        "tier": Tier(tier).value,
                        "estimated_cost": estimated_cost,
                        "actual_cost": actual_cost,
                        "processing_time_ms": processing_time_ms,
                        "success": success,
                        "error_message": error_message,
                    })
            finally:
                self.release(reservation)

            logger.debug(
                f"Recorded spend for {user_id}: tier={Tier(tier).value} cost={actual_cost:.4f} "
                f"success={success}"
            )

            if before is None:
                return []
            return self._check_alerts(before, actual_cost)

    async def record_rejection(
        self, user_id: str, feature: str, estimated_cost: float, reason: str
    ) -> None:
        """Write the zero-cost FALLBACK record for a request refused before execution"""
        await self.record_spend(
            user_id=user_id,
            feature=feature,
            tier=Tier.FALLBACK,
            estimated_cost=estimated_cost,
            actual_cost=0.0,
            processing_time_ms=0.0,
            success=False,
            error_message=reason,
        )

    def _check_alerts(self, before: BudgetStatus, cost: float) -> List[BudgetAlert]:
        alerts = []
        periods = (
            ("daily", before.daily_spent, before.daily_limit, self.config.daily_alert_thresholds),
            ("monthly", before.monthly_spent, before.monthly_limit, self.config.monthly_alert_thresholds),
        )

        for budget_type, spent, limit, thresholds in periods:
            old = _utilization(spent, limit)
            new = _utilization(spent + cost, limit)
            crossed = [t for t in sorted(thresholds) if old < t <= new]
            if not crossed:
                continue

            threshold = crossed[-1]
            alert = BudgetAlert(
                user_id=before.user_id,
                level=_alert_level(threshold),
                budget_type=budget_type,
                threshold=threshold,
                current_spend=spent + cost,
                budget_limit=limit,
                utilization=new,
            )
            alerts.append(alert)
            self.recent_alerts.append(alert)
            logger.warning(
                f"Budget alert for {before.user_id}: {budget_type} utilization "
                f"{new * 100:.1f}% crossed {threshold * 100:.0f}% "
                f"({spent + cost:.4f} / {limit:.2f} EUR)"
            )

        return alerts

    async def remaining(self, user_id: str) -> float:
        status = await self._status(user_id)
        return status.remaining_budget

    async def budget_status(self, user_id: str) -> BudgetStatus:
        return await self._status(user_id)

    async def set_budget(
        self,
        user_id: str,
        daily_limit: Optional[float] = None,
        monthly_limit: Optional[float] = None,
    ) -> BudgetStatus:
        for name, value in (("daily_limit", daily_limit), ("monthly_limit", monthly_limit)):
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

        async with self._user_lock(user_id):
            async with self.db_manager.get_session() as session:
                await BudgetRepository(session).upsert(
                    user_id,
                    daily_limit,
                    monthly_limit,
                    self.config.default_daily_budget,
                    self.config.default_monthly_budget,
                )

        logger.info(f"Updated budget for {user_id}: daily={daily_limit} monthly={monthly_limit}")
        return await self._status(user_id)

    async def analytics(self, user_id: str, window_days: int = 30) -> Dict[str, Any]:
        """Spend analytics over the last `window_days` days"""
        since = utcnow() - timedelta(days=window_days)

        async with self.db_manager.get_session() as session:
            usage = UsageRepository(session)
            records = await usage.records_since(user_id, since)
            cost_by_tier = await usage.cost_by_tier_since(user_id, since)

        total_cost = sum(r.actual_cost for r in records)
        query_count = len(records)

        count_by_tier: Dict[str, int] = {}
        for record in records:
            count_by_tier[record.tier] = count_by_tier.get(record.tier, 0) + 1

        executed = [r for r in records if not Tier(r.tier).is_accounting_only]
        baseline = len(executed) * baseline_cost(most_expensive_tier())
        executed_cost = sum(r.actual_cost for r in executed)
        savings = max(0.0, baseline - executed_cost)

        return {
            "user_id": user_id,
            "window_days": window_days,
            "total_cost": round(total_cost, 6),
            "query_count": query_count,
            "average_cost_per_query": round(total_cost / query_count, 6) if query_count else 0.0,
            "cost_by_tier": {tier: round(cost, 6) for tier, cost in cost_by_tier.items()},
            "queries_by_tier": count_by_tier,
            "success_rate": (
                sum(1 for r in records if r.success) / query_count if query_count else 1.0
            ),
            "average_processing_time_ms": (
                sum(r.processing_time_ms for r in executed) / len(executed) if executed else 0.0
            ),
            "savings_vs_baseline": {
                "amount": round(savings, 6),
                "percentage": round(savings / baseline * 100, 2) if baseline else 0.0,
                "baseline_tier": most_expensive_tier().value,
            },
        }
