"""Semantic index store: one row per synced forum post, keyed by post id."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config.database import DatabaseFactory
from ..errors import PersistenceError
from ..services.models import IndexDocumentInput, IndexedDocument, utcnow
from .embeddings import cosine_similarity

logger = logging.getLogger(__name__)


def post_link(forum_url: str, discussion_id: int, slug: str, post_number: int) -> str:
    """Deep link to a post on the forum."""
    return f"{forum_url.rstrip('/')}/d/{discussion_id}-{slug}/{post_number}"


class IndexStore:
    """Insert-or-update writes and simple reads over ``post_embeddings``."""

    def __init__(self, db: DatabaseFactory):
        self.db = db

    async def upsert(self, source_item_id: int, document: IndexDocumentInput) -> None:
        """Insert the document, or update it in place if the post is already indexed.

        On update only title, content, embedding and updated_at change; the
        row id and created_at are kept.
        """
        try:
            self._upsert_once(source_item_id, document)
        except IntegrityError:
            # A concurrent writer inserted the same post first
            logger.debug(f"Insert race on post {source_item_id}, retrying as update")
            try:
                self._upsert_once(source_item_id, document)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to upsert post {source_item_id}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert post {source_item_id}") from e

    def _upsert_once(self, source_item_id: int, document: IndexDocumentInput) -> None:
        with self.db.session() as session:
            existing = session.execute(
                select(IndexedDocument).where(IndexedDocument.source_item_id == source_item_id)
            ).scalar_one_or_none()
            now = utcnow()
            if existing is not None:
                existing.title = document.title
                existing.content = document.content
                existing.embedding = list(document.embedding)
                existing.updated_at = now
            else:
                session.add(IndexedDocument(
                    source_item_id=source_item_id,
                    discussion_id=document.discussion_id,
                    post_number=document.post_number or 1,
                    title=document.title,
                    slug=document.slug,
                    content=document.content,
                    username=document.username,
                    is_private=document.is_private,
                    group_ids=list(document.group_ids or []),
                    created_at=now,
                    updated_at=now,
                    embedding=list(document.embedding),
                ))

    async def get(self, source_item_id: int) -> Optional[Dict[str, Any]]:
        with self.db.session() as session:
            row = session.execute(
                select(IndexedDocument).where(IndexedDocument.source_item_id == source_item_id)
            ).scalar_one_or_none()
            return row.to_dict(include_embedding=True) if row else None

    async def count(self) -> int:
        with self.db.session() as session:
            return session.execute(select(func.count()).select_from(IndexedDocument)).scalar_one()

    async def clear(self) -> int:
        """Delete every indexed document. Used by full backfills only."""
        try:
            with self.db.session() as session:
                result = session.execute(delete(IndexedDocument))
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to clear the index") from e

    async def keyword_search(self, keywords: Sequence[str], limit: int = 8) -> List[Dict[str, Any]]:
        """Case-insensitive substring match on content, newest first."""
        terms = [k for k in keywords if k]
        if not terms or limit <= 0:
            return []
        lowered = func.lower(IndexedDocument.content)
        stmt = (
            select(IndexedDocument)
            .where(or_(*[lowered.contains(k.lower(), autoescape=True) for k in terms]))
            .where(IndexedDocument.is_private.is_(False))
            .order_by(IndexedDocument.created_at.desc(), IndexedDocument.id.desc())
            .limit(limit)
        )
        with self.db.session() as session:
            return [row.to_dict() for row in session.execute(stmt).scalars()]

    async def semantic_search(self, query_vector: Sequence[float], limit: int = 5,
                              min_similarity: float = 0.3) -> List[Tuple[Dict[str, Any], float]]:
        """Rank public documents by cosine similarity to ``query_vector``."""
        stmt = select(IndexedDocument).where(
            IndexedDocument.is_private.is_(False),
            IndexedDocument.embedding.isnot(None),
        )
        scored: List[Tuple[Dict[str, Any], float]] = []
        with self.db.session() as session:
            for row in session.execute(stmt).scalars():
                if not row.embedding or len(row.embedding) != len(query_vector):
                    continue
                score = cosine_similarity(query_vector, row.embedding)
                if score >= min_similarity:
                    scored.append((row.to_dict(), score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]
