"""Aggregates events and opportunities from the forum index and the web."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from ..indexer.index_store import IndexStore
from ..observability.metrics import external_search
from .web_search import WebSearchClient

logger = logging.getLogger(__name__)

EVENT_KEYWORDS = ("meetup", "workshop", "fest", "hackathon")
OPPORTUNITY_KEYWORDS = ("internship", "hiring", "job", "referral", "vacancy")

INTERNAL_LIMIT = 8
EXTERNAL_LIMIT = 4

EVENTS_QUERY = "Student hackathons coding competitions college fests Bangalore India upcoming"
OPPORTUNITIES_QUERY = "Tech internships for students India off-campus drive 2025"

Category = Literal["events", "opportunities"]


@dataclass
class EventItem:
    id: str
    title: str
    source: Literal["internal", "external"]
    category: Category
    type: str
    link: str
    snippet: str
    date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "category": self.category,
            "type": self.type,
            "link": self.link,
            "snippet": self.snippet,
        }
        if self.date:
            data["date"] = self.date
        return data


class EventsService:
    """Merges internal keyword matches with two external web searches."""

    def __init__(self, index: IndexStore, web_search: WebSearchClient):
        self.index = index
        self.web_search = web_search

    async def fetch_internal_events(self) -> List[EventItem]:
        posts = await self.index.keyword_search(EVENT_KEYWORDS + OPPORTUNITY_KEYWORDS, INTERNAL_LIMIT)
        items = []
        for post in posts:
            content_lower = post["content"].lower()
            category: Category = "events"
            if any(k in content_lower for k in OPPORTUNITY_KEYWORDS):
                category = "opportunities"
            items.append(EventItem(
                id=f"int-{post['id']}",
                title=post["title"],
                source="internal",
                category=category,
                type="meetup" if category == "events" else "job",
                link=f"/discussion/{post['discussion_id']}/{post['slug']}/{post['post_number']}",
                snippet=post["content"][:100] + "...",
                date=post["created_at"],
            ))
        return items

    async def _fetch_external(self, query: str, category: Category, item_type: str, prefix: str) -> List[EventItem]:
        results = await self.web_search.search(query, EXTERNAL_LIMIT)
        stamp = int(time.time() * 1000)
        return [
            EventItem(
                id=f"{prefix}-{i}-{stamp}",
                title=r.title,
                source="external",
                category=category,
                type=item_type,
                link=r.url,
                snippet=r.snippet,
            )
            for i, r in enumerate(results)
        ]

    async def fetch_external_events(self) -> List[EventItem]:
        return await self._fetch_external(EVENTS_QUERY, "events", "hackathon", "ext-evt")

    async def fetch_external_opportunities(self) -> List[EventItem]:
        return await self._fetch_external(OPPORTUNITIES_QUERY, "opportunities", "internship", "ext-opp")

    async def _guarded(self, name: str, coro) -> List[EventItem]:
        try:
            items = await coro
        except Exception as e:
            external_search.labels(source=name, status="error").inc()
            logger.warning(f"Events source '{name}' failed: {e}")
            return []
        external_search.labels(source=name, status="success").inc()
        return items

    async def get_aggregated_events(self) -> List[EventItem]:
        """Internal results first, then external events, then external opportunities.

        Each source degrades to an empty list on failure.
        """
        internal, ext_events, ext_opps = await asyncio.gather(
            self._guarded("internal", self.fetch_internal_events()),
            self._guarded("web_events", self.fetch_external_events()),
            self._guarded("web_opportunities", self.fetch_external_opportunities()),
        )
        return [*internal, *ext_events, *ext_opps]
