"""
Pytest configuration and shared fixtures for the fiscal AI routing tests
"""
import pytest
from typing import Dict

from fiscal_ai.config import Settings
from fiscal_ai.cost_control.ledger import CostLedger
from fiscal_ai.database.connection import DatabaseManager
from fiscal_ai.memory.manager import DeadLetterLog, SelectiveMemoryManager
from fiscal_ai.routing.classifier import QueryClassifier
from fiscal_ai.routing.enhancer import ProgressiveEnhancer
from fiscal_ai.routing.executors import build_executors
from fiscal_ai.routing.router import SmartRouter
from fiscal_ai.routing.tiers import ContextSource

from tests.helpers import FakeModelClient, FakeProvider


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment, with short deadlines"""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fiscal_ai_test.db'}",
        default_daily_budget=0.50,
        default_monthly_budget=5.00,
        provider_timeout_seconds=0.5,
        simple_deadline_seconds=2.0,
        moderate_deadline_seconds=2.0,
        urgent_deadline_seconds=3.0,
        complex_deadline_seconds=3.0,
        web_research_deadline_seconds=3.0,
        request_deadline_seconds=5.0,
        request_logging_enabled=False,
    )


@pytest.fixture
async def db_manager(test_settings):
    """Initialized database with all tables"""
    manager = DatabaseManager(test_settings.database_url, echo=False)
    assert await manager.initialize()
    assert await manager.create_tables()
    yield manager
    await manager.cleanup()


@pytest.fixture
async def ledger(db_manager, test_settings) -> CostLedger:
    return CostLedger(db_manager, test_settings)


@pytest.fixture
def classifier(test_settings) -> QueryClassifier:
    return QueryClassifier(config=test_settings)


@pytest.fixture
def model_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def providers() -> Dict[ContextSource, FakeProvider]:
    return {
        ContextSource.FISCAL_PROFILE: FakeProvider(
            ContextSource.FISCAL_PROFILE,
            {"revenue": {"total_paid": 32000}, "compliance": {"bnc_threshold_progress": 41}},
        ),
        ContextSource.MEMORY: FakeProvider(ContextSource.MEMORY, "Échanges précédents : aucun souci"),
        ContextSource.WEB_SEARCH: FakeProvider(
            ContextSource.WEB_SEARCH,
            [{"title": "Seuils micro", "url": "https://www.urssaf.fr/seuils", "snippet": "77 700 €"}],
        ),
        ContextSource.WORKSPACE: FakeProvider(
            ContextSource.WORKSPACE, {"pages": [{"title": "Plan 2026", "summary": "Objectifs"}]}
        ),
    }


@pytest.fixture
def router(ledger, classifier, model_client, providers, test_settings) -> SmartRouter:
    executors = build_executors(model_client, providers, test_settings)
    return SmartRouter(ledger, classifier, executors, test_settings)


@pytest.fixture
def enhancer(router, classifier, test_settings) -> ProgressiveEnhancer:
    return ProgressiveEnhancer(router, classifier, config=test_settings)


@pytest.fixture
def dead_letters() -> DeadLetterLog:
    return DeadLetterLog(capacity=10)


@pytest.fixture
def memory_manager(db_manager, dead_letters) -> SelectiveMemoryManager:
    return SelectiveMemoryManager(db_manager, dead_letters)
