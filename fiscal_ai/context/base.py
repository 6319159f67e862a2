import aiohttp
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import Settings, settings as default_settings
from ..exceptions import ContextProviderUnavailable
from ..routing.models import Source
from ..routing.tiers import ContextSource

logger = logging.getLogger(__name__)


@dataclass
class ProviderResult:
    """Data returned by one context provider for one query"""
    source: ContextSource
    data: Any
    sources: List[Source] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


class ContextProvider(ABC):
    """Narrow interface to an external context source.

    `fetch` raises ContextProviderUnavailable when no data can be delivered;
    callers treat that as degraded context, never as a request failure.
    """

    source: ContextSource

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    async def fetch(self, user_id: str, query_text: str) -> ProviderResult:
        ...

    async def close(self):
        return None


class HttpJsonProvider(ContextProvider):
    """Context provider backed by a JSON-over-HTTP service"""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.provider_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self._headers())
        return self._session

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.configured:
            raise ContextProviderUnavailable(self.name, "not configured")

        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}{path}", params=params) as response:
                if response.status != 200:
                    raise ContextProviderUnavailable(self.name, f"HTTP {response.status}")
                return await response.json()
        except (aiohttp.ClientError, ValueError) as e:
            raise ContextProviderUnavailable(self.name, str(e)) from e

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None
