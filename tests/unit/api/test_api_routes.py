"""Tests for the HTTP API"""

import httpx
import pytest

from fiscal_ai.api.main import create_app
from fiscal_ai.routing.models import Domain
from fiscal_ai.routing.tiers import Tier
from fiscal_ai.service import build_advisor

from tests.helpers import FakeModelClient, make_answer, usage_records

pytestmark = pytest.mark.integration

STRATEGY_QUESTION = (
    "Quelle stratégie d'optimisation fiscale adopter pour mon activité de conseil "
    "en 2026 afin de réduire mes impôts sur le revenu ?"
)


@pytest.fixture
async def make_client(db_manager, providers, test_settings):
    """Factory for an API client around an advisor with a scripted model"""
    advisors = []
    clients = []

    async def factory(model_client=None, config=None):
        config = config or test_settings
        advisor = await build_advisor(
            config=config,
            model_client=model_client or FakeModelClient(),
            providers=providers,
            db_manager=db_manager,
        )
        app = create_app(advisor=advisor, config=config)
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        advisors.append(advisor)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()
    for advisor in advisors:
        await advisor.memory.drain()


@pytest.fixture
async def api(make_client):
    return await make_client()


class TestAdviceEndpoint:
    """Test POST /ai/advice"""

    @pytest.mark.asyncio
    async def test_simple_advice(self, api, db_manager):
        """Test a definitional question returns a camelCase answer on the simple tier"""
        response = await api.post("/ai/advice", json={
            "query": "Qu'est-ce que le régime BNC ?",
            "userId": "user_1",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["tier"] == "SIMPLE"
        assert data["metadata"]["cost"] == pytest.approx(0.001)
        assert data["metadata"]["usedContext"] is False
        assert data["metadata"]["routingReason"] == "classified"
        assert "processingTime" in data["metadata"]
        assert data["confidence"] == pytest.approx(0.8)
        assert data["sources"][0]["type"] == "ai"

        records = await usage_records(db_manager, "user_1")
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_budget_exceeded_returns_402(self, api):
        """Test an unaffordable forced tier is refused with the remaining budget"""
        await api.put("/ai/budget", json={"userId": "user_1", "dailyLimit": 0.02})

        response = await api.post("/ai/advice", json={
            "query": "Qu'est-ce que le régime BNC ?",
            "userId": "user_1",
            "options": {"forceRoute": "COMPLEX", "maxCost": 0.05},
        })

        assert response.status_code == 402
        data = response.json()
        assert data["remainingBudget"] == pytest.approx(0.02)
        assert "Daily budget exceeded" in data["reason"]
        assert data["suggestion"]

    @pytest.mark.asyncio
    async def test_accounting_tier_cannot_be_forced(self, api):
        """Test FALLBACK and ERROR are rejected as forced routes"""
        response = await api.post("/ai/advice", json={
            "query": "TVA ?",
            "userId": "user_1",
            "options": {"forceRoute": "FALLBACK"},
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_query_is_invalid(self, api):
        """Test request validation"""
        response = await api.post("/ai/advice", json={"query": "", "userId": "user_1"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_model_failure_returns_502(self, make_client):
        """Test execution failures carry fallback advice"""
        client = await make_client(FakeModelClient(replies=[RuntimeError("model down")]))

        response = await client.post("/ai/advice", json={"query": "TVA ?", "userId": "user_1"})

        assert response.status_code == 502
        assert "fallbackAdvice" in response.json()

    @pytest.mark.asyncio
    async def test_timeout_returns_408(self, make_client, test_settings):
        """Test deadline expiry carries fallback advice"""
        config = test_settings.model_copy(update={"simple_deadline_seconds": 0.05})
        client = await make_client(FakeModelClient(delay=1.0), config)

        response = await client.post("/ai/advice", json={"query": "TVA ?", "userId": "user_1"})

        assert response.status_code == 408
        assert "fallbackAdvice" in response.json()


class TestEnhancedAdviceEndpoint:
    """Test POST /ai/enhanced-advice"""

    @pytest.mark.asyncio
    async def test_enhanced_advice(self, make_client):
        """Test a vague first answer escalates once"""
        client = await make_client(FakeModelClient(replies=[("Oui.", 0.3)]))

        response = await client.post("/ai/enhanced-advice", json={
            "query": "Qu'est-ce que le régime BNC ?",
            "userId": "user_1",
            "options": {"maxAttempts": 2},
        })

        assert response.status_code == 200
        data = response.json()
        assert data["enhancementPath"] == ["SIMPLE", "MODERATE"]
        assert data["metadata"]["escalations"] == 1
        assert data["metadata"]["finalRoute"] == "MODERATE"
        assert data["totalCost"] == pytest.approx(0.006)
        assert data["metadata"]["attempts"] == 2
        assert [a["tier"] for a in data["metadata"]["attemptDetails"]] == ["SIMPLE", "MODERATE"]
        assert data["metadata"]["attemptDetails"][1]["cumulativeCost"] == pytest.approx(0.006)

    @pytest.mark.asyncio
    async def test_max_attempts_is_bounded(self, api):
        """Test the attempt limit validation"""
        response = await api.post("/ai/enhanced-advice", json={
            "query": "TVA ?",
            "userId": "user_1",
            "options": {"maxAttempts": 9},
        })

        assert response.status_code == 422


class TestMultiAgentEndpoint:
    """Test POST /ai/multi-agent-advice"""

    @pytest.mark.asyncio
    async def test_multi_agent_advice(self, api, providers):
        """Test the orchestrator runs on the complex tier by default"""
        response = await api.post("/ai/multi-agent-advice", json={
            "query": STRATEGY_QUESTION,
            "userId": "user_1",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["queryComplexity"] == "COMPLEX"
        assert set(data["metadata"]["agentsUsed"]) == {"fiscal_analyst", "compliance", "strategy"}
        assert "workspace" in data["metadata"]["dataSourcesUsed"]
        assert data["metadata"]["cost"] == pytest.approx(0.025)

    @pytest.mark.asyncio
    async def test_real_time_data_uses_web_research(self, api):
        """Test real-time data requests run the web research tier"""
        response = await api.post("/ai/multi-agent-advice", json={
            "query": STRATEGY_QUESTION,
            "userId": "user_1",
            "context": {"requiresRealTimeData": True, "requiresWorkspaceData": False},
        })

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["queryComplexity"] == "WEB_RESEARCH"
        assert "web_search" in data["metadata"]["dataSourcesUsed"]
        assert "workspace" not in data["metadata"]["dataSourcesUsed"]

    @pytest.mark.asyncio
    async def test_high_urgency_uses_urgent_tier(self, api):
        """Test high urgency maps to the urgent tier"""
        response = await api.post("/ai/multi-agent-advice", json={
            "query": STRATEGY_QUESTION,
            "userId": "user_1",
            "context": {"urgency": "high"},
        })

        assert response.status_code == 200
        assert response.json()["metadata"]["agentsUsed"] == ["compliance"]


class TestCostEndpoints:
    """Test cost analytics, budgets and capabilities"""

    @pytest.mark.asyncio
    async def test_cost_analytics(self, api):
        """Test analytics reflect routed queries"""
        await api.post("/ai/advice", json={"query": "Qu'est-ce que le régime BNC ?", "userId": "user_1"})

        response = await api.get("/ai/cost-analytics", params={"userId": "user_1", "days": 7})

        assert response.status_code == 200
        data = response.json()
        assert data["queryCount"] == 1
        assert data["totalCost"] == pytest.approx(0.001)
        assert data["costByTier"] == {"SIMPLE": pytest.approx(0.001)}
        assert data["savingsVsBaseline"]["baselineTier"] == "WEB_RESEARCH"
        assert data["budget"]["remainingBudget"] == pytest.approx(0.499)

    @pytest.mark.asyncio
    async def test_cost_analytics_requires_user(self, api):
        """Test the userId query parameter is mandatory"""
        response = await api.get("/ai/cost-analytics")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_memory_stats(self, api, memory_manager):
        """Test stored memory is reported per storage type"""
        await memory_manager.store_selectively(
            "user_1", STRATEGY_QUESTION, make_answer(tier=Tier.COMPLEX), domain=Domain.STRATEGY
        )

        response = await api.get("/ai/memory-stats", params={"userId": "user_1"})

        assert response.status_code == 200
        data = response.json()
        assert data["totalMemories"] == 1
        assert data["fullMemories"] == 1
        assert data["monthlyCost"] == pytest.approx(0.002)
        assert data["storageEfficiency"] == 0.0

    @pytest.mark.asyncio
    async def test_update_budget(self, api):
        """Test budget limits are updated"""
        response = await api.put("/ai/budget", json={"userId": "user_1", "dailyLimit": 1.5, "monthlyLimit": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["dailyLimit"] == 1.5
        assert data["monthlyLimit"] == 20.0

    @pytest.mark.asyncio
    async def test_negative_budget_is_invalid(self, api):
        """Test negative limits are rejected"""
        response = await api.put("/ai/budget", json={"userId": "user_1", "dailyLimit": -1})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_capabilities(self, api):
        """Test tier and agent capabilities are listed"""
        response = await api.get("/ai/capabilities")

        assert response.status_code == 200
        data = response.json()
        assert [t["tier"] for t in data["tiers"]] == ["SIMPLE", "MODERATE", "URGENT", "COMPLEX", "WEB_RESEARCH"]
        assert all(t["available"] for t in data["tiers"])
        assert data["multiAgent"]["executionModes"]["URGENT"] == [["compliance"]]


class TestHealthAndRoot:
    """Test service endpoints"""

    @pytest.mark.asyncio
    async def test_health(self, api):
        """Test component health is aggregated"""
        response = await api.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["dead_letters"]["buffered"] == 0

    @pytest.mark.asyncio
    async def test_root(self, api):
        """Test the service banner"""
        response = await api.get("/")

        assert response.json()["status"] == "operational"

    @pytest.mark.asyncio
    async def test_missing_advisor_returns_503(self, test_settings):
        """Test routes refuse requests before the advisor is wired"""
        app = create_app(config=test_settings)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/ai/capabilities")

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_request_logging_header(self, make_client, test_settings):
        """Test the logging middleware reports processing time"""
        config = test_settings.model_copy(update={"request_logging_enabled": True})
        client = await make_client(config=config)

        response = await client.get("/")

        assert "x-process-time" in response.headers
