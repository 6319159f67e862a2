import logging
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_, desc, delete

from .models import UsageRecord, UserBudget, MemoryEntry, utcnow

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base repository with common database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session


class UsageRepository(BaseRepository):
    """Append-only access to the spend ledger"""

    async def append(self, record_data: Dict[str, Any]) -> UsageRecord:
        """Insert a usage record; records are never updated"""
        record = UsageRecord(**record_data)
        if record.created_at is None:
            record.created_at = utcnow()
        self.session.add(record)
        await self.session.flush()
        return record

    async def sum_spend_since(self, user_id: str, since: datetime) -> float:
        result = await self.session.execute(
            select(func.coalesce(func.sum(UsageRecord.actual_cost), 0.0))
            .where(
                and_(
                    UsageRecord.user_id == user_id,
                    UsageRecord.created_at >= since
                )
            )
        )
        return float(result.scalar_one() or 0.0)

    async def cost_by_tier_since(self, user_id: str, since: datetime) -> Dict[str, float]:
        result = await self.session.execute(
            select(UsageRecord.tier, func.sum(UsageRecord.actual_cost))
            .where(
                and_(
                    UsageRecord.user_id == user_id,
                    UsageRecord.created_at >= since
                )
            )
            .group_by(UsageRecord.tier)
        )
        return {tier: float(total or 0.0) for tier, total in result.all()}

    async def records_since(self, user_id: str, since: datetime) -> List[UsageRecord]:
        result = await self.session.execute(
            select(UsageRecord)
            .where(
                and_(
                    UsageRecord.user_id == user_id,
                    UsageRecord.created_at >= since
                )
            )
            .order_by(UsageRecord.created_at, UsageRecord.id)
        )
        return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(UsageRecord.id)).where(UsageRecord.user_id == user_id)
        )
        return int(result.scalar_one())


class BudgetRepository(BaseRepository):
    """Per-user budget limits"""

    async def get(self, user_id: str) -> Optional[UserBudget]:
        result = await self.session.execute(
            select(UserBudget).where(UserBudget.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: str,
        daily_limit: Optional[float],
        monthly_limit: Optional[float],
        default_daily: float,
        default_monthly: float
    ) -> UserBudget:
        budget = await self.get(user_id)
        if budget is None:
            budget = UserBudget(
                user_id=user_id,
                daily_limit=default_daily if daily_limit is None else daily_limit,
                monthly_limit=default_monthly if monthly_limit is None else monthly_limit,
            )
            self.session.add(budget)
        else:
            if daily_limit is not None:
                budget.daily_limit = daily_limit
            if monthly_limit is not None:
                budget.monthly_limit = monthly_limit
            budget.updated_at = utcnow()

        await self.session.flush()
        return budget


class MemoryRepository(BaseRepository):
    """Conversational memory entries"""

    async def create(self, entry_data: Dict[str, Any]) -> MemoryEntry:
        entry = MemoryEntry(**entry_data)
        if entry.created_at is None:
            entry.created_at = utcnow()
        self.session.add(entry)
        await self.session.flush()
        return entry

    @staticmethod
    def _active(now: datetime):
        return or_(MemoryEntry.expires_at.is_(None), MemoryEntry.expires_at > now)

    async def recent_for_user(
        self, user_id: str, limit: int = 5, now: Optional[datetime] = None
    ) -> List[MemoryEntry]:
        """Newest unexpired entries first"""
        result = await self.session.execute(
            select(MemoryEntry)
            .where(
                and_(
                    MemoryEntry.user_id == user_id,
                    self._active(now or utcnow())
                )
            )
            .order_by(desc(MemoryEntry.created_at), desc(MemoryEntry.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(MemoryEntry.id)).where(MemoryEntry.user_id == user_id)
        )
        return int(result.scalar_one())

    async def storage_breakdown(self, user_id: str, now: datetime) -> Dict[str, Tuple[int, float]]:
        """Count and storage cost of unexpired entries per storage type"""
        result = await self.session.execute(
            select(MemoryEntry.storage_type, func.count(MemoryEntry.id), func.sum(MemoryEntry.storage_cost))
            .where(
                and_(
                    MemoryEntry.user_id == user_id,
                    self._active(now)
                )
            )
            .group_by(MemoryEntry.storage_type)
        )
        return {
            storage_type: (int(count), float(cost or 0.0))
            for storage_type, count, cost in result.all()
        }

    async def count_expired(self, user_id: str, now: datetime) -> int:
        result = await self.session.execute(
            select(func.count(MemoryEntry.id))
            .where(
                and_(
                    MemoryEntry.user_id == user_id,
                    MemoryEntry.expires_at <= now
                )
            )
        )
        return int(result.scalar_one())

    async def delete_expired(self, now: datetime) -> Tuple[int, float]:
        """Remove expired entries; returns how many and the storage cost they held"""
        expired = and_(MemoryEntry.expires_at.is_not(None), MemoryEntry.expires_at <= now)
        totals = await self.session.execute(
            select(func.count(MemoryEntry.id), func.coalesce(func.sum(MemoryEntry.storage_cost), 0.0))
            .where(expired)
        )
        count, cost = totals.one()
        if count:
            await self.session.execute(delete(MemoryEntry).where(expired))
        return int(count), float(cost or 0.0)
