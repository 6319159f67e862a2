"""Fakes and builders shared by the test suites"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from fiscal_ai.context.base import ContextProvider, ProviderResult
from fiscal_ai.database.connection import DatabaseManager
from fiscal_ai.database.repositories import UsageRepository
from fiscal_ai.exceptions import ContextProviderUnavailable
from fiscal_ai.llm.models import LLMResponse, ModelClient
from fiscal_ai.routing.models import Answer, AnswerMetadata, Query, QueryOptions
from fiscal_ai.routing.tiers import ContextSource, Tier


DETAILED_REPLY = (
    "En régime micro-BNC, l'abattement forfaitaire est de 34 % du chiffre d'affaires. "
    "Le seuil 2025 est de 77 700 €. Par exemple, pour 30 000 € encaissés, le revenu "
    "imposable est de 19 800 €.\n- Déclarez votre chiffre d'affaires à l'URSSAF\n"
    "- Vérifiez le seuil de franchise de TVA"
)

Reply = Union[str, Tuple[str, float], Exception]


class FakeModelClient(ModelClient):
    """Scripted model client recording every call"""

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        default_reply: str = DETAILED_REPLY,
        confidence: Optional[float] = 0.8,
        delay: float = 0.0,
    ):
        self.replies = list(replies or [])
        self.default_reply = default_reply
        self.confidence = confidence
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def complete(self, system_prompt, user_prompt, temperature=0.3, max_tokens=600):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
        })
        if self.delay:
            await asyncio.sleep(self.delay)

        reply: Reply = self.replies.pop(0) if self.replies else self.default_reply
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, tuple):
            content, confidence = reply
        else:
            content, confidence = reply, self.confidence
        return LLMResponse(content=content, confidence_score=confidence, model_used="fake")

    async def close(self):
        self.closed = True


class FakeProvider(ContextProvider):
    """In-process context provider with configurable failure and latency"""

    def __init__(
        self,
        source: ContextSource,
        data: Any = None,
        fail: bool = False,
        delay: float = 0.0,
        recommendations: Optional[List[str]] = None,
    ):
        self.source = source
        self.data = data if data is not None else {"source": source.value}
        self.fail = fail
        self.delay = delay
        self.recommendations = recommendations or []
        self.calls: List[Tuple[str, str]] = []

    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        self.calls.append((user_id, query_text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ContextProviderUnavailable(self.name, "simulated outage")
        return ProviderResult(
            source=self.source,
            data=self.data,
            recommendations=list(self.recommendations),
        )


def make_answer(
    text: str = DETAILED_REPLY,
    confidence: float = 0.8,
    tier: Tier = Tier.SIMPLE,
    cost: float = 0.0,
) -> Answer:
    return Answer(
        text=text,
        confidence=confidence,
        metadata=AnswerMetadata(tier=tier, cost=cost),
    )


def make_query(text: str = "Qu'est-ce que le régime BNC ?", user_id: str = "user_1", **options) -> Query:
    return Query(text=text, user_id=user_id, options=QueryOptions(**options))


async def usage_records(db_manager: DatabaseManager, user_id: str):
    async with db_manager.get_session() as session:
        return await UsageRepository(session).records_since(user_id, datetime(2000, 1, 1))
