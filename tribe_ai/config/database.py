"""Database engine and session factory.

Provides one engine for the semantic index store and one for the forum
source store. In development both point at the same SQLite file.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .settings import DatabaseConfig

logger = logging.getLogger(__name__)


def build_engine(url: str, config: Optional[DatabaseConfig] = None) -> Engine:
    """Create a SQLAlchemy engine with pool settings suited to the backend."""
    config = config or DatabaseConfig()
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory databases live on a single connection
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=config.echo, **kwargs)
    return create_engine(url, echo=config.echo, pool_size=config.pool_size, pool_pre_ping=True)


class DatabaseFactory:
    """Owns the engines and session factories for both stores."""

    def __init__(self, config: DatabaseConfig, index_engine: Optional[Engine] = None,
                 source_engine: Optional[Engine] = None):
        self.config = config
        self.index_engine = index_engine or build_engine(config.index_url, config)
        if source_engine is not None:
            self.source_engine = source_engine
        elif config.resolved_source_url == config.index_url:
            self.source_engine = self.index_engine
        else:
            self.source_engine = build_engine(config.resolved_source_url, config)
        self._session_factory = sessionmaker(bind=self.index_engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create index tables if they do not exist."""
        from ..services.models import Base

        Base.metadata.create_all(self.index_engine)
        logger.info(f"Index store initialized: {self.index_engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session scope: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.index_engine.dispose()
        if self.source_engine is not self.index_engine:
            self.source_engine.dispose()
        logger.info("Database connections closed")
