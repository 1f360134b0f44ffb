"""Index-side database models and the source item value type."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncCheckpoint(Base):
    """Singleton cursor row per logical checkpoint key."""
    __tablename__ = 'sync_state'

    id = Column(String(100), primary_key=True)
    last_item_id = Column(Integer, nullable=False, default=0)
    items_indexed = Column(Integer, nullable=False, default=0)
    last_synced_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'last_item_id': self.last_item_id,
            'items_indexed': self.items_indexed,
            'last_synced_at': self.last_synced_at.isoformat() if self.last_synced_at else None,
        }


class IndexedDocument(Base):
    """One row per synced forum post in the semantic index."""
    __tablename__ = 'post_embeddings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_item_id = Column(Integer, nullable=False, unique=True)
    discussion_id = Column(Integer, nullable=False)
    post_number = Column(Integer, nullable=False, default=1)
    title = Column(String(500), nullable=False)
    slug = Column(String(500), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    username = Column(String(255), nullable=False, default="User")
    is_private = Column(Boolean, nullable=False, default=False)
    group_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    embedding = Column(JSON, nullable=True)

    __table_args__ = (
        Index('idx_post_embeddings_discussion', 'discussion_id'),
        Index('idx_post_embeddings_created', 'created_at'),
    )

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'source_item_id': self.source_item_id,
            'discussion_id': self.discussion_id,
            'post_number': self.post_number,
            'title': self.title,
            'slug': self.slug,
            'content': self.content,
            'username': self.username,
            'is_private': self.is_private,
            'group_ids': list(self.group_ids or []),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_embedding:
            data['embedding'] = self.embedding
        return data


@dataclass(frozen=True)
class SourceItem:
    """A forum post as read from the source store. Never written back."""
    id: int
    discussion_id: int
    post_number: int
    content: Optional[str]
    username: str
    discussion_title: str
    discussion_slug: str
    is_private: bool
    created_at: Optional[datetime] = None


@dataclass
class IndexDocumentInput:
    """Fields written to the index for one source item."""
    discussion_id: int
    post_number: int
    title: str
    slug: str
    content: str
    username: str
    embedding: List[float]
    is_private: bool = False
    group_ids: Optional[List[int]] = None
