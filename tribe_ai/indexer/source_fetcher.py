"""Reads candidate posts from the Flarum forum store.

Only the columns the sync pipeline needs are described here; the forum
owns the schema.
"""

import asyncio
import logging
from typing import Callable, List, TypeVar

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, MetaData, String, Table, Text,
    func, literal, select,
)
from sqlalchemy.engine import Connection, Engine

from ..services.models import SourceItem

logger = logging.getLogger(__name__)

T = TypeVar("T")

flarum_metadata = MetaData()

flarum_users = Table(
    "flarum_users", flarum_metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(100)),
)

flarum_discussions = Table(
    "flarum_discussions", flarum_metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=False),
    Column("slug", String(200), nullable=False),
    Column("is_private", Boolean, nullable=False, default=False),
    Column("hidden_at", DateTime, nullable=True),
)

flarum_posts = Table(
    "flarum_posts", flarum_metadata,
    Column("id", Integer, primary_key=True),
    Column("discussion_id", Integer, nullable=False),
    Column("number", Integer, nullable=True),
    Column("user_id", Integer, nullable=True),
    Column("type", String(100), nullable=False, default="comment"),
    Column("content", Text, nullable=True),
    Column("is_approved", Boolean, nullable=False, default=True),
    Column("hidden_at", DateTime, nullable=True),
    Column("created_at", DateTime, nullable=True),
)


def _eligible(stmt, after_id: int):
    """Apply the visibility, approval and confidentiality predicates."""
    p, d = flarum_posts.c, flarum_discussions.c
    return stmt.where(
        p.id > after_id,
        p.hidden_at.is_(None),
        d.hidden_at.is_(None),
        p.is_approved.is_(True),
        p.type == "comment",
        d.is_private.is_(False),
    )


class SourceFetcher:
    """Fetches bounded, ordered batches of publicly visible posts."""

    def __init__(self, engine: Engine):
        self.engine = engine

    async def _run(self, query: Callable[[Connection], T]) -> T:
        # The forum store is external; keep blocking I/O off the event loop
        def _execute() -> T:
            with self.engine.connect() as conn:
                return query(conn)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _execute)

    async def fetch_batch(self, after_id: int, limit: int) -> List[SourceItem]:
        """Return up to ``limit`` eligible posts with id > ``after_id``, ascending by id."""
        if limit <= 0:
            return []
        p, d, u = flarum_posts.c, flarum_discussions.c, flarum_users.c
        stmt = (
            select(
                p.id, p.discussion_id, p.number, p.content, p.created_at,
                func.coalesce(u.username, literal("User")).label("username"),
                d.title, d.slug, d.is_private,
            )
            .select_from(
                flarum_posts
                .join(flarum_discussions, p.discussion_id == d.id)
                .outerjoin(flarum_users, p.user_id == u.id)
            )
        )
        stmt = _eligible(stmt, after_id).order_by(p.id.asc()).limit(limit)

        rows = await self._run(lambda conn: conn.execute(stmt).all())

        items = [
            SourceItem(
                id=row.id,
                discussion_id=row.discussion_id,
                post_number=row.number or 1,
                content=row.content,
                username=row.username,
                discussion_title=row.title,
                discussion_slug=row.slug,
                is_private=bool(row.is_private),
                created_at=row.created_at,
            )
            for row in rows
        ]
        logger.debug(f"Fetched {len(items)} source items after id {after_id}")
        return items

    async def count_pending(self, after_id: int) -> int:
        """Number of eligible posts above the cursor."""
        p, d = flarum_posts.c, flarum_discussions.c
        stmt = select(func.count()).select_from(
            flarum_posts.join(flarum_discussions, p.discussion_id == d.id)
        )
        stmt = _eligible(stmt, after_id)
        return await self._run(lambda conn: conn.execute(stmt).scalar_one())
