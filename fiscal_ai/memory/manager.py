import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from ..database.connection import DatabaseManager
from ..database.models import utcnow
from ..database.repositories import MemoryRepository
from ..exceptions import MemoryPersistenceFailed
from ..routing.models import Answer, Domain
from ..routing.tiers import Tier

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger("fiscal_ai.memory.dead_letter")

NON_MEMORABLE_TIERS = frozenset((Tier.SIMPLE, Tier.FALLBACK, Tier.ERROR))


class StorageType(str, Enum):
    FULL = "FULL"
    SUMMARY = "SUMMARY"
    KEYWORDS = "KEYWORDS"


# Monthly storage cost per entry
STORAGE_COSTS = {
    StorageType.FULL: 0.002,
    StorageType.SUMMARY: 0.0005,
    StorageType.KEYWORDS: 0.0001,
}

RETENTION_DAYS = {
    "LOW": 7,
    "MEDIUM": 30,
    "HIGH": 90,
    "CRITICAL": 365,
}

TIER_IMPORTANCE = {
    Tier.MODERATE: 5,
    Tier.COMPLEX: 8,
    Tier.WEB_RESEARCH: 8,
    Tier.URGENT: 9,
}

DOMAIN_IMPORTANCE_BONUS = {
    Domain.COMPLIANCE: 2,
    Domain.STRATEGY: 1,
}

STRATEGIC_MARKERS = (
    "optimisation", "stratégie", "planification", "développement",
    "croissance", "expansion", "recommandations",
)

PERSONAL_MARKERS = (
    "dans votre cas", "pour votre situation", "compte tenu de",
    "selon votre profil", "votre entreprise", "je vous recommande",
)

FISCAL_KEYWORDS = (
    "urssaf", "tva", "seuil", "déclaration", "cotisation",
    "chiffre d'affaires", "micro-entrepreneur", "bic", "bnc",
)

CALCULATION_PATTERN = re.compile(r"€\s?\d|\d\s?€|\d\s?%")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|\n+")

SUMMARY_SENTENCES = 3
SUMMARY_MAX_CHARS = 400


@dataclass
class MemoryDecision:
    """How an exchange is kept: detail level, importance and lifetime"""
    importance: int
    storage_type: StorageType
    retention_days: int

    @property
    def cost(self) -> float:
        return STORAGE_COSTS[self.storage_type]


def importance_for(tier: Tier, domain: Domain, confidence: Optional[float] = None) -> int:
    """Score an exchange from 1 to 10.

    Components:
    - tier baseline (analysis and urgent answers rank highest)
    - domain bonus (compliance +2, strategy +1)
    - low confidence penalty (-1 below 0.5)
    """
    importance = TIER_IMPORTANCE.get(Tier(tier), 3)
    importance += DOMAIN_IMPORTANCE_BONUS.get(Domain(domain), 0)
    if confidence is not None and confidence < 0.5:
        importance -= 1
    return max(1, min(10, importance))


def retention_for(importance: int) -> int:
    if importance >= 9:
        return RETENTION_DAYS["CRITICAL"]
    if importance >= 7:
        return RETENTION_DAYS["HIGH"]
    if importance >= 5:
        return RETENTION_DAYS["MEDIUM"]
    return RETENTION_DAYS["LOW"]


def _contains_any(text: str, markers) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def decide(
    tier: Tier,
    domain: Domain,
    query_text: str,
    answer_text: str,
    confidence: Optional[float] = None,
) -> MemoryDecision:
    """Pick the storage detail for a memorable exchange"""
    tier = Tier(tier)
    importance = importance_for(tier, domain, confidence)

    if tier == Tier.URGENT:
        storage_type = StorageType.FULL
    elif tier in (Tier.COMPLEX, Tier.WEB_RESEARCH):
        if _contains_any(f"{query_text} {answer_text}", STRATEGIC_MARKERS):
            storage_type = StorageType.FULL
        else:
            storage_type = StorageType.SUMMARY
    elif CALCULATION_PATTERN.search(answer_text):
        storage_type = StorageType.SUMMARY
    elif _contains_any(answer_text, PERSONAL_MARKERS):
        storage_type = StorageType.FULL
    else:
        storage_type = StorageType.KEYWORDS

    # Low-importance exchanges never keep the full text
    if storage_type == StorageType.FULL and importance < 5:
        storage_type = StorageType.SUMMARY

    return MemoryDecision(
        importance=importance,
        storage_type=storage_type,
        retention_days=retention_for(importance),
    )


def extract_key_points(query_text: str, answer_text: str) -> List[str]:
    combined = f"{query_text} {answer_text}".lower()
    return [
        keyword for keyword in FISCAL_KEYWORDS
        if re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", combined)
    ]


def summarize(text: str) -> str:
    sentences = [s.strip(" -") for s in SENTENCE_BREAK.split(text) if s.strip(" -")]
    summary = " ".join(sentences[:SUMMARY_SENTENCES])
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[:SUMMARY_MAX_CHARS - 1].rstrip() + "…"
    return summary


def compress(storage_type: StorageType, answer_text: str, key_points: List[str]) -> str:
    """Text actually persisted for the given storage detail"""
    if storage_type == StorageType.FULL:
        return answer_text
    if storage_type == StorageType.SUMMARY:
        return summarize(answer_text)
    return "Mots-clés : " + (", ".join(key_points) or "aucun")


@dataclass
class DeadLetter:
    operation: str
    user_id: str
    error: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: Any = field(default_factory=utcnow)


class DeadLetterLog:
    """Failure channel for best-effort side effects"""

    def __init__(self, capacity: int = 500):
        self._entries: Deque[DeadLetter] = deque(maxlen=capacity)
        self.total = 0

    def record(self, operation: str, user_id: str, error: Exception, payload: Optional[Dict[str, Any]] = None):
        letter = DeadLetter(operation=operation, user_id=user_id, error=str(error), payload=payload or {})
        self._entries.append(letter)
        self.total += 1
        dead_letter_logger.error(f"{operation} failed for {user_id}: {error}")

    def entries(self) -> List[DeadLetter]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def status(self) -> Dict[str, Any]:
        last = self._entries[-1] if self._entries else None
        return {
            "buffered": len(self._entries),
            "total": self.total,
            "last_error": last.error if last else None,
        }


class SelectiveMemoryManager:
    """Stores answered queries as conversational memory when they are worth keeping.

    Storage is fire-and-forget: `schedule` launches the write as a task and
    returns immediately, failures are routed to the dead-letter log and never
    reach the caller.
    """

    def __init__(self, db_manager: DatabaseManager, dead_letters: Optional[DeadLetterLog] = None):
        self.db_manager = db_manager
        self.dead_letters = dead_letters or DeadLetterLog()
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def should_store(tier: Tier, opt_out: bool = False) -> bool:
        return not opt_out and Tier(tier) not in NON_MEMORABLE_TIERS

    async def store_selectively(
        self,
        user_id: str,
        query_text: str,
        answer: Answer,
        classification: Optional[Tier] = None,
        domain: Optional[Domain] = None,
        opt_out: bool = False,
    ) -> bool:
        """Persist the exchange if policy allows; returns whether an entry was written"""
        tier = classification or answer.metadata.tier
        if not self.should_store(tier, opt_out):
            logger.debug(f"Skipping memory for {user_id}: tier={Tier(tier).value} opt_out={opt_out}")
            return False

        try:
            await self._write(user_id, query_text, answer, tier, domain or answer.metadata.domain)
            return True
        except MemoryPersistenceFailed as e:
            self.dead_letters.record(
                "memory.store", user_id, e, {"tier": Tier(tier).value, "query": query_text[:200]}
            )
            return False

    async def _write(self, user_id: str, query_text: str, answer: Answer, tier: Tier, domain: Domain):
        now = utcnow()
        try:
            decision = decide(tier, domain, query_text, answer.text, answer.confidence)
            key_points = extract_key_points(query_text, answer.text)
            async with self.db_manager.get_session() as session:
                await MemoryRepository(session).create({
                    "user_id": user_id,
                    "query": query_text,
                    "answer": compress(decision.storage_type, answer.text, key_points),
                    "classification": Tier(tier).value,
                    "domain": Domain(domain).value,
                    "confidence": answer.confidence,
                    "importance": decision.importance,
                    "storage_type": decision.storage_type.value,
                    "storage_cost": decision.cost,
                    "key_points": ",".join(key_points) or None,
                    "created_at": now,
                    "expires_at": now + timedelta(days=decision.retention_days),
                })
        except Exception as e:
            raise MemoryPersistenceFailed(str(e)) from e

        logger.debug(
            f"Stored memory entry for {user_id} ({Tier(tier).value}, "
            f"{decision.storage_type.value}, importance={decision.importance}, "
            f"{decision.retention_days}d)"
        )

    async def memory_stats(self, user_id: str) -> Dict[str, Any]:
        """Stored entries per detail level, their monthly cost and the saving against full storage"""
        now = utcnow()
        async with self.db_manager.get_session() as session:
            repo = MemoryRepository(session)
            breakdown = await repo.storage_breakdown(user_id, now)
            expired = await repo.count_expired(user_id, now)

        counts = {t: breakdown.get(t.value, (0, 0.0))[0] for t in StorageType}
        total = sum(counts.values())
        monthly_cost = sum(cost for _, cost in breakdown.values())
        full_cost = total * STORAGE_COSTS[StorageType.FULL]

        return {
            "total_memories": total,
            "full_memories": counts[StorageType.FULL],
            "summary_memories": counts[StorageType.SUMMARY],
            "keyword_memories": counts[StorageType.KEYWORDS],
            "expired_memories": expired,
            "monthly_cost": round(monthly_cost, 6),
            "storage_efficiency": round(1 - monthly_cost / full_cost, 4) if full_cost else 0.0,
        }

    async def purge_expired(self) -> Dict[str, Any]:
        """Delete entries past their retention period"""
        try:
            async with self.db_manager.get_session() as session:
                deleted, cost_saved = await MemoryRepository(session).delete_expired(utcnow())
        except Exception as e:
            raise MemoryPersistenceFailed(str(e)) from e

        if deleted:
            logger.info(f"Purged {deleted} expired memory entries (${cost_saved:.4f}/month)")
        return {"deleted": deleted, "cost_saved": round(cost_saved, 6)}

    def schedule(
        self,
        user_id: str,
        query_text: str,
        answer: Answer,
        classification: Optional[Tier] = None,
        domain: Optional[Domain] = None,
        opt_out: bool = False,
    ) -> Optional[asyncio.Task]:
        """Launch the store in the background; None when policy skips it"""
        tier = classification or answer.metadata.tier
        if not self.should_store(tier, opt_out):
            return None

        task = asyncio.create_task(
            self.store_selectively(user_id, query_text, answer, tier, domain, opt_out)
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.dead_letters.record("memory.schedule", "unknown", error)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for every scheduled store to finish"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
