"""Settings for the Tribe AI service.

Every section is a pydantic model with a ``from_env`` constructor so the
service can be configured purely through environment variables, while
tests build the models directly.
"""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class DatabaseConfig(BaseModel):
    """Database configuration for the index and source stores."""
    index_url: str = Field(default="sqlite:///tribe_ai.db", description="SQLAlchemy URL of the semantic index store")
    source_url: Optional[str] = Field(default=None, description="SQLAlchemy URL of the forum store (defaults to index_url)")
    pool_size: int = Field(default=10, description="Connection pool size")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def resolved_source_url(self) -> str:
        return self.source_url or self.index_url

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create configuration from environment variables."""
        return cls(
            index_url=os.getenv('TRIBE_INDEX_DB_URL', 'sqlite:///tribe_ai.db'),
            source_url=os.getenv('TRIBE_SOURCE_DB_URL') or None,
            pool_size=int(os.getenv('DB_POOL_SIZE', '10')),
            echo=_env_bool('DB_ECHO'),
        )


class SyncConfig(BaseModel):
    """Configuration for the forum → index sync pipeline."""
    api_key: Optional[str] = Field(default=None, description="Shared secret expected in the x-api-key header")
    checkpoint_key: str = Field(default="flarum_posts", description="Logical name of the checkpoint row")
    max_batch_size: int = Field(default=20, ge=1, le=500, description="Maximum source items per cycle")
    embedding_timeout: float = Field(default=30.0, gt=0, description="Per-item embedding timeout in seconds")
    fetch_timeout: float = Field(default=30.0, gt=0, description="Timeout in seconds for reading a batch from the forum")
    schedule_minutes: int = Field(default=0, ge=0, description="Interval for scheduled cycles; 0 disables")

    @classmethod
    def from_env(cls) -> 'SyncConfig':
        return cls(
            api_key=os.getenv('SYNC_API_KEY') or None,
            checkpoint_key=os.getenv('SYNC_CHECKPOINT_KEY', 'flarum_posts'),
            max_batch_size=int(os.getenv('SYNC_MAX_BATCH_SIZE', '20')),
            embedding_timeout=float(os.getenv('SYNC_EMBEDDING_TIMEOUT', '30')),
            fetch_timeout=float(os.getenv('SYNC_FETCH_TIMEOUT', '30')),
            schedule_minutes=int(os.getenv('SYNC_SCHEDULE_MINUTES', '0')),
        )


class EmbeddingProvider(str, Enum):
    """Supported embedding backends."""
    SENTENCE_TRANSFORMERS = "sentence-transformers"
    OPENAI = "openai"


class EmbeddingConfig(BaseModel):
    """Embedding generator configuration."""
    provider: EmbeddingProvider = Field(default=EmbeddingProvider.SENTENCE_TRANSFORMERS)
    model_name: str = Field(default="all-MiniLM-L6-v2")
    max_input_chars: int = Field(default=8000, ge=1, description="Hard cap applied before vectorization")
    openai_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'EmbeddingConfig':
        provider = EmbeddingProvider(os.getenv('EMBEDDING_PROVIDER', 'sentence-transformers').lower())
        default_model = "text-embedding-3-small" if provider == EmbeddingProvider.OPENAI else "all-MiniLM-L6-v2"
        return cls(
            provider=provider,
            model_name=os.getenv('EMBEDDING_MODEL', default_model),
            max_input_chars=int(os.getenv('EMBEDDING_MAX_INPUT_CHARS', '8000')),
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
        )


class ChatConfig(BaseModel):
    """Upstream chat completion provider (OpenAI-compatible API)."""
    api_key: Optional[str] = None
    api_url: str = Field(default="https://api.deepseek.com/v1/chat/completions")
    model: str = Field(default="deepseek-chat")
    temperature: float = 0.7
    max_tokens: int = 800
    top_p: float = 0.9
    presence_penalty: float = 0.4
    frequency_penalty: float = 0.2
    request_timeout: float = Field(default=60.0, gt=0)
    forum_url: str = Field(default="https://tribe-community.vercel.app")

    @classmethod
    def from_env(cls) -> 'ChatConfig':
        return cls(
            api_key=os.getenv('DEEPSEEK_API_KEY') or os.getenv('OPENAI_API_KEY') or None,
            api_url=os.getenv('DEEPSEEK_API_URL', 'https://api.deepseek.com/v1/chat/completions'),
            model=os.getenv('CHAT_MODEL', 'deepseek-chat'),
            request_timeout=float(os.getenv('CHAT_REQUEST_TIMEOUT', '60')),
            forum_url=os.getenv('FLARUM_URL', 'https://tribe-community.vercel.app'),
        )


class SearchConfig(BaseModel):
    """External web search provider (You.com)."""
    api_key: Optional[str] = None
    api_url: str = Field(default="https://ydc-index.io/v1/search")
    timeout: float = Field(default=10.0, gt=0)
    results_per_query: int = Field(default=4, ge=1)

    @classmethod
    def from_env(cls) -> 'SearchConfig':
        return cls(
            api_key=os.getenv('YOU_API_KEY') or None,
            api_url=os.getenv('YOU_API_URL', 'https://ydc-index.io/v1/search'),
            timeout=float(os.getenv('YOU_API_TIMEOUT', '10')),
        )


class LoggingConfig(BaseModel):
    level: str = "INFO"
    use_json: bool = False
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        return cls(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            use_json=_env_bool('LOG_JSON'),
            log_file=os.getenv('LOG_FILE') or None,
        )


class Settings(BaseModel):
    """Top-level settings container."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            database=DatabaseConfig.from_env(),
            sync=SyncConfig.from_env(),
            embedding=EmbeddingConfig.from_env(),
            chat=ChatConfig.from_env(),
            search=SearchConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
