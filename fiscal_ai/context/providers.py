import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..config import Settings
from ..database.connection import DatabaseManager
from ..database.repositories import MemoryRepository
from ..exceptions import ContextProviderUnavailable
from ..routing.models import Source
from ..routing.tiers import ContextSource
from .base import HttpJsonProvider, ContextProvider, ProviderResult

logger = logging.getLogger(__name__)


# Official French fiscal sources
TRUSTED_FISCAL_DOMAINS = (
    "urssaf.fr",
    "service-public.fr",
    "impots.gouv.fr",
    "legifrance.gouv.fr",
    "economie.gouv.fr",
    "entreprises.gouv.fr",
)

RELIABLE_NEWS_DOMAINS = (
    "lesechos.fr",
    "challenges.fr",
    "lefigaro.fr",
    "journaldunet.com",
)


def domain_trust(url: Optional[str]) -> float:
    if not url:
        return 0.3
    host = urlparse(url).netloc.lower()
    if any(host == d or host.endswith("." + d) for d in TRUSTED_FISCAL_DOMAINS):
        return 1.0
    if any(host == d or host.endswith("." + d) for d in RELIABLE_NEWS_DOMAINS):
        return 0.7
    return 0.5


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def profile_recommendations(profile: Dict[str, Any]) -> List[str]:
    """Threshold and deadline reminders from a fiscal profile, skipping malformed fields"""
    recommendations = []
    compliance = profile.get("compliance")
    if not isinstance(compliance, dict):
        return recommendations

    for regime, key in (("BNC", "bnc_threshold_progress"), ("BIC", "bic_threshold_progress")):
        progress = _as_float(compliance.get(key))
        if progress is not None and progress >= 80:
            recommendations.append(
                f"Surveillez votre chiffre d'affaires : {progress:.0f}% du seuil {regime} atteint"
            )

    deadlines = compliance.get("next_deadlines")
    if not isinstance(deadlines, list):
        return recommendations
    for deadline in deadlines[:2]:
        if isinstance(deadline, dict):
            description = deadline.get("description")
        else:
            description = deadline if isinstance(deadline, str) else None
        if description:
            recommendations.append(f"Échéance à venir : {description}")
    return recommendations


class FiscalProfileProvider(HttpJsonProvider):
    """User's revenue, thresholds and deadlines from the invoicing platform"""

    source = ContextSource.FISCAL_PROFILE

    def __init__(self, config: Settings):
        super().__init__(config.fiscal_profile_url, config.fiscal_profile_api_key, config)

    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        profile = await self._get_json(f"/users/{user_id}/fiscal-profile")
        if not isinstance(profile, dict):
            raise ContextProviderUnavailable(self.name, "unexpected payload")

        return ProviderResult(
            source=self.source,
            data=profile,
            sources=[Source(type="platform", title="Profil fiscal utilisateur", reliability=0.9)],
            recommendations=profile_recommendations(profile),
        )


class WebSearchProvider(HttpJsonProvider):
    """Recent fiscal information from a web search service, trusted domains first"""

    source = ContextSource.WEB_SEARCH

    def __init__(self, config: Settings):
        super().__init__(config.web_search_url, config.web_search_api_key, config)
        self.max_results = config.web_search_max_results

    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        payload = await self._get_json(
            "/search",
            params={"q": f"{query_text} micro-entreprise France", "num": self.max_results, "hl": "fr"},
        )
        raw_results = payload.get("results", []) if isinstance(payload, dict) else []

        seen = set()
        results: List[Dict[str, Any]] = []
        for item in raw_results:
            url = item.get("url") or item.get("link")
            if not url or url in seen:
                continue
            seen.add(url)
            results.append({
                "title": item.get("title", url),
                "url": url,
                "snippet": item.get("snippet", ""),
                "trust_score": domain_trust(url),
            })

        if not results:
            raise ContextProviderUnavailable(self.name, "no results")

        results.sort(key=lambda r: r["trust_score"], reverse=True)
        results = results[:self.max_results]

        return ProviderResult(
            source=self.source,
            data=results,
            sources=[
                Source(type="web", title=r["title"], locator=r["url"], reliability=r["trust_score"])
                for r in results
            ],
        )


class WorkspaceProvider(HttpJsonProvider):
    """Pages from the user's connected third-party workspace"""

    source = ContextSource.WORKSPACE

    def __init__(self, config: Settings):
        super().__init__(config.workspace_url, config.workspace_api_key, config)

    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        payload = await self._get_json("/search", params={"user_id": user_id, "q": query_text})
        pages = payload.get("pages", []) if isinstance(payload, dict) else []
        if not pages:
            raise ContextProviderUnavailable(self.name, "no matching pages")

        return ProviderResult(
            source=self.source,
            data={"pages": pages, "summary": payload.get("summary")},
            sources=[
                Source(
                    type="workspace",
                    title=page.get("title", "Page sans titre"),
                    locator=page.get("url"),
                    reliability=0.8,
                )
                for page in pages
            ],
            recommendations=list(payload.get("insights", [])),
        )


class MemoryContextProvider(ContextProvider):
    """Summary of the user's most recent stored exchanges"""

    source = ContextSource.MEMORY

    def __init__(self, db_manager: DatabaseManager, limit: int = 5):
        self.db_manager = db_manager
        self.limit = limit

    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        try:
            async with self.db_manager.get_session() as session:
                entries = await MemoryRepository(session).recent_for_user(user_id, self.limit)
        except Exception as e:
            raise ContextProviderUnavailable(self.name, str(e)) from e

        if not entries:
            raise ContextProviderUnavailable(self.name, "no stored exchanges")

        lines = [
            f"- [{entry.domain}] Q: {entry.query[:120]} | R: {entry.answer[:200]}"
            for entry in reversed(entries)
        ]
        return ProviderResult(
            source=self.source,
            data="Échanges précédents :\n" + "\n".join(lines),
            sources=[Source(type="memory", title="Historique des conseils", reliability=0.6)],
        )
