"""Pipelines: forum sync, web search and events aggregation."""

from .events import EventItem, EventsService
from .sync import ItemResult, SkipReason, SyncOrchestrator, SyncReport, SyncStatus
from .web_search import WebSearchClient, WebSearchResult

__all__ = [
    'EventItem',
    'EventsService',
    'ItemResult',
    'SkipReason',
    'SyncOrchestrator',
    'SyncReport',
    'SyncStatus',
    'WebSearchClient',
    'WebSearchResult',
]
