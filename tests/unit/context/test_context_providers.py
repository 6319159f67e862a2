"""Tests for context providers"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fiscal_ai.context.providers import (
    FiscalProfileProvider, MemoryContextProvider, WebSearchProvider, WorkspaceProvider, domain_trust,
    profile_recommendations,
)
from fiscal_ai.database.repositories import MemoryRepository
from fiscal_ai.exceptions import ContextProviderUnavailable
from fiscal_ai.routing.tiers import ContextSource


class TestDomainTrust:
    """Test source reliability scoring"""

    @pytest.mark.parametrize("url,trust", [
        ("https://www.urssaf.fr/portail/home.html", 1.0),
        ("https://impots.gouv.fr/particulier", 1.0),
        ("https://www.lesechos.fr/article", 0.7),
        ("https://blog.example.com/tva", 0.5),
        (None, 0.3),
    ])
    def test_domain_trust(self, url, trust):
        """Test official domains rank above news and unknown sites"""
        assert domain_trust(url) == trust

    def test_lookalike_domain_is_not_trusted(self):
        """Test suffix matching requires a dot boundary"""
        assert domain_trust("https://fakeurssaf.fr/") == 0.5


class TestFiscalProfileProvider:
    """Test the fiscal profile provider"""

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_unavailable(self, test_settings):
        """Test a missing base URL degrades instead of failing the request"""
        provider = FiscalProfileProvider(test_settings)

        with pytest.raises(ContextProviderUnavailable):
            await provider.fetch("user_1", "TVA ?")

    @pytest.mark.asyncio
    async def test_threshold_recommendations(self, test_settings):
        """Test near-threshold revenue and deadlines become recommendations"""
        provider = FiscalProfileProvider(test_settings)
        provider._get_json = AsyncMock(return_value={
            "revenue": {"total_paid": 62000},
            "compliance": {
                "bnc_threshold_progress": 85,
                "bic_threshold_progress": 10,
                "next_deadlines": [{"description": "Déclaration URSSAF du 31 janvier"}],
            },
        })

        result = await provider.fetch("user_1", "Vais-je dépasser le seuil ?")

        provider._get_json.assert_awaited_once_with("/users/user_1/fiscal-profile")
        assert result.source == ContextSource.FISCAL_PROFILE
        assert result.data["revenue"]["total_paid"] == 62000
        assert len(result.recommendations) == 2
        assert "85% du seuil BNC" in result.recommendations[0]
        assert "31 janvier" in result.recommendations[1]

    @pytest.mark.asyncio
    async def test_unexpected_payload(self, test_settings):
        """Test a non-object payload is rejected"""
        provider = FiscalProfileProvider(test_settings)
        provider._get_json = AsyncMock(return_value=["not", "a", "profile"])

        with pytest.raises(ContextProviderUnavailable):
            await provider.fetch("user_1", "TVA ?")

    @pytest.mark.asyncio
    async def test_malformed_fields_are_skipped(self, test_settings):
        """Test string deadlines and non-numeric progress do not break the fetch"""
        provider = FiscalProfileProvider(test_settings)
        provider._get_json = AsyncMock(return_value={
            "compliance": {
                "bnc_threshold_progress": "beaucoup",
                "bic_threshold_progress": "92",
                "next_deadlines": ["2026-04-30 déclaration URSSAF", 42, {"date": "2026-05-15"}],
            },
        })

        result = await provider.fetch("user_1", "TVA ?")

        assert result.recommendations == [
            "Surveillez votre chiffre d'affaires : 92% du seuil BIC atteint",
            "Échéance à venir : 2026-04-30 déclaration URSSAF",
        ]

    def test_profile_recommendations_without_compliance(self):
        """Test a compliance field of the wrong type yields no reminders"""
        assert profile_recommendations({"compliance": "à jour"}) == []
        assert profile_recommendations({"compliance": {"next_deadlines": "demain"}}) == []

    @pytest.mark.asyncio
    async def test_invalid_json_is_unavailable(self, test_settings):
        """Test an undecodable body surfaces as an unavailable provider"""
        response = MagicMock(status=200)
        response.json = AsyncMock(side_effect=ValueError("Expecting value"))
        request = MagicMock()
        request.__aenter__ = AsyncMock(return_value=response)
        request.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.get.return_value = request

        provider = FiscalProfileProvider(test_settings.model_copy(update={"fiscal_profile_url": "http://profile.test"}))
        provider._get_session = AsyncMock(return_value=session)

        with pytest.raises(ContextProviderUnavailable):
            await provider.fetch("user_1", "TVA ?")


class TestWebSearchProvider:
    """Test the web search provider"""

    @pytest.mark.asyncio
    async def test_results_deduplicated_and_ranked(self, test_settings):
        """Test duplicate URLs are dropped and trusted domains come first"""
        provider = WebSearchProvider(test_settings)
        provider._get_json = AsyncMock(return_value={"results": [
            {"title": "Blog", "url": "https://blog.example.com/seuils", "snippet": "..."},
            {"title": "URSSAF", "link": "https://www.urssaf.fr/seuils", "snippet": "77 700 €"},
            {"title": "Blog again", "url": "https://blog.example.com/seuils"},
        ]})

        result = await provider.fetch("user_1", "seuil micro BNC 2025")

        assert [r["url"] for r in result.data] == [
            "https://www.urssaf.fr/seuils",
            "https://blog.example.com/seuils",
        ]
        assert result.sources[0].reliability == 1.0
        assert result.sources[0].type == "web"

    @pytest.mark.asyncio
    async def test_empty_results_are_unavailable(self, test_settings):
        """Test an empty search is treated as missing context"""
        provider = WebSearchProvider(test_settings)
        provider._get_json = AsyncMock(return_value={"results": []})

        with pytest.raises(ContextProviderUnavailable):
            await provider.fetch("user_1", "TVA")


class TestWorkspaceProvider:
    """Test the workspace provider"""

    @pytest.mark.asyncio
    async def test_pages_and_insights(self, test_settings):
        """Test pages become sources and insights become recommendations"""
        provider = WorkspaceProvider(test_settings)
        provider._get_json = AsyncMock(return_value={
            "pages": [{"title": "Plan 2026", "url": "https://workspace.example/p/1"}],
            "summary": "Objectifs de chiffre d'affaires",
            "insights": ["Mettre à jour le prévisionnel"],
        })

        result = await provider.fetch("user_1", "objectifs")

        assert result.data["summary"] == "Objectifs de chiffre d'affaires"
        assert result.sources[0].title == "Plan 2026"
        assert result.recommendations == ["Mettre à jour le prévisionnel"]


class TestMemoryContextProvider:
    """Test the stored-exchanges provider"""

    @pytest.mark.asyncio
    async def test_no_entries_is_unavailable(self, db_manager):
        """Test a user without history gets no memory context"""
        provider = MemoryContextProvider(db_manager)

        with pytest.raises(ContextProviderUnavailable):
            await provider.fetch("user_1", "TVA ?")

    @pytest.mark.asyncio
    async def test_recent_entries_summarized(self, db_manager):
        """Test the most recent exchanges are rendered oldest first"""
        async with db_manager.get_session() as session:
            repo = MemoryRepository(session)
            for i in range(3):
                await repo.create({
                    "user_id": "user_1",
                    "query": f"Question {i}",
                    "answer": f"Réponse {i}",
                    "classification": "COMPLEX",
                    "domain": "FISCAL",
                    "confidence": 0.8,
                })

        result = await MemoryContextProvider(db_manager, limit=2).fetch("user_1", "TVA ?")

        assert result.source == ContextSource.MEMORY
        assert result.data.startswith("Échanges précédents :")
        assert "Question 0" not in result.data
        assert result.data.index("Question 1") < result.data.index("Question 2")
