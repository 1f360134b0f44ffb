"""Shared fixtures: in-memory forum + index stores and a deterministic embedder."""

import hashlib
from datetime import datetime
from typing import List, Optional, Sequence, Set

import pytest
from sqlalchemy import insert

from tribe_ai.config.database import DatabaseFactory
from tribe_ai.config.settings import DatabaseConfig
from tribe_ai.indexer.checkpoint_store import CheckpointStore
from tribe_ai.indexer.embeddings import BaseEmbedder
from tribe_ai.indexer.index_store import IndexStore
from tribe_ai.indexer.source_fetcher import (
    SourceFetcher, flarum_discussions, flarum_metadata, flarum_posts, flarum_users,
)
from tribe_ai.pipelines.sync import SyncOrchestrator

DIMENSION = 8


class FakeEmbedder(BaseEmbedder):
    """Hash-based vectors; texts containing a marker in ``fail_on`` raise."""

    provider_name = "fake"

    def __init__(self, fail_on: Optional[Set[str]] = None):
        super().__init__("fake-model")
        self.fail_on = fail_on or set()
        self.calls: List[str] = []

    async def _embed(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        for marker in self.fail_on:
            if marker in text:
                raise RuntimeError(f"provider rejected input containing {marker!r}")
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 + 0.01 for b in digest[:DIMENSION]]


class ForumSeeder:
    """Writes rows into the Flarum tables of the source store."""

    def __init__(self, engine):
        self.engine = engine
        self._discussions: Set[int] = set()
        self._users: Set[int] = set()

    def discussion(self, discussion_id: int = 1, title: str = "Welcome to Tribe", slug: str = "welcome",
                   is_private: bool = False, hidden: bool = False):
        with self.engine.begin() as conn:
            conn.execute(insert(flarum_discussions).values(
                id=discussion_id, title=title, slug=slug, is_private=is_private,
                hidden_at=datetime(2024, 1, 1) if hidden else None,
            ))
        self._discussions.add(discussion_id)

    def user(self, user_id: int = 1, username: str = "asha"):
        with self.engine.begin() as conn:
            conn.execute(insert(flarum_users).values(id=user_id, username=username))
        self._users.add(user_id)

    def post(self, post_id: int, content: str = "<p>Hello tribe</p>", discussion_id: int = 1,
             user_id: Optional[int] = 1, number: Optional[int] = None, type: str = "comment",
             is_approved: bool = True, hidden: bool = False):
        if discussion_id not in self._discussions:
            self.discussion(discussion_id)
        if user_id is not None and user_id not in self._users:
            self.user(user_id)
        with self.engine.begin() as conn:
            conn.execute(insert(flarum_posts).values(
                id=post_id, discussion_id=discussion_id, number=number if number is not None else post_id,
                user_id=user_id, type=type, content=content, is_approved=is_approved,
                hidden_at=datetime(2024, 1, 1) if hidden else None,
                created_at=datetime(2024, 5, 1, 12, 0, 0),
            ))


@pytest.fixture
def db():
    factory = DatabaseFactory(DatabaseConfig(index_url="sqlite://"))
    factory.initialize()
    flarum_metadata.create_all(factory.source_engine)
    yield factory
    factory.close()


@pytest.fixture
def forum(db):
    return ForumSeeder(db.source_engine)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index_store(db):
    return IndexStore(db)


@pytest.fixture
def checkpoints(db):
    return CheckpointStore(db)


@pytest.fixture
def fetcher(db):
    return SourceFetcher(db.source_engine)


@pytest.fixture
def orchestrator(checkpoints, fetcher, embedder, index_store):
    return SyncOrchestrator(
        checkpoints=checkpoints,
        fetcher=fetcher,
        embedder=embedder,
        index=index_store,
        checkpoint_key="flarum_posts",
        embedding_timeout=2.0,
    )
