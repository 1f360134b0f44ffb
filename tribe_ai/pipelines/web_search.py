"""Client for the You.com web search API."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.settings import SearchConfig
from ..errors import SearchProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebSearchResult:
    title: str
    url: str
    snippet: str
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WebSearchClient:
    """Query string → ranked snippet list.

    ``search`` raises ``SearchProviderError`` on any transport or payload
    problem; callers decide how to degrade.
    """

    def __init__(self, config: SearchConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    async def search(self, query: str, limit: Optional[int] = None) -> List[WebSearchResult]:
        if not self.enabled:
            logger.debug("Web search disabled: no API key configured")
            return []

        params = {"query": query, "count": str(limit or self.config.results_per_query)}
        headers = {"X-API-KEY": self.config.api_key}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        try:
            if self._session is not None:
                data = await self._get(self._session, params, headers, timeout)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._get(session, params, headers, timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SearchProviderError(f"Web search request failed: {e}") from e

        return self._parse(data)

    async def _get(self, session: aiohttp.ClientSession, params, headers, timeout) -> Dict[str, Any]:
        async with session.get(self.config.api_url, params=params, headers=headers, timeout=timeout) as response:
            if response.status != 200:
                raise SearchProviderError(f"Web search returned status {response.status}")
            try:
                return await response.json()
            except ValueError as e:
                raise SearchProviderError(f"Web search returned invalid JSON: {e}") from e

    def _parse(self, data: Any) -> List[WebSearchResult]:
        if not isinstance(data, dict):
            raise SearchProviderError("Malformed web search response")
        sections = data.get("results", {})
        if not isinstance(sections, dict) or not isinstance(sections.get("web", []), list):
            raise SearchProviderError("Malformed web search results")
        hits = sections.get("web", [])
        results = []
        for hit in hits:
            if not isinstance(hit, dict) or not hit.get("url"):
                continue
            snippets = hit.get("snippets")
            results.append(WebSearchResult(
                title=str(hit.get("title") or hit["url"]),
                url=str(hit["url"]),
                snippet=str(snippets[0]) if isinstance(snippets, list) and snippets else "",
                thumbnail_url=hit.get("thumbnail_url"),
            ))
        return results
