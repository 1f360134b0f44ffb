"""Configuration module for Tribe AI.

Provides configuration management for databases, sync, embeddings, chat
and web search.
"""

from .database import DatabaseFactory, build_engine
from .settings import (
    ChatConfig,
    DatabaseConfig,
    EmbeddingConfig,
    EmbeddingProvider,
    LoggingConfig,
    SearchConfig,
    Settings,
    SyncConfig,
)

__all__ = [
    'DatabaseFactory',
    'build_engine',
    'ChatConfig',
    'DatabaseConfig',
    'EmbeddingConfig',
    'EmbeddingProvider',
    'LoggingConfig',
    'SearchConfig',
    'Settings',
    'SyncConfig',
]
