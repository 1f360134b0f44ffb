"""Checkpoint store for the sync pipeline.

Persists a single cursor row per checkpoint key. The cursor only moves
forward; counters accumulate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..config.database import DatabaseFactory
from ..errors import PersistenceError
from ..services.models import SyncCheckpoint, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckpointState:
    """Detached snapshot of a checkpoint row."""
    key: str
    last_item_id: int
    items_indexed: int
    last_synced_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "last_item_id": self.last_item_id,
            "items_indexed": self.items_indexed,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }


def _snapshot(row: SyncCheckpoint) -> CheckpointState:
    return CheckpointState(
        key=row.id,
        last_item_id=row.last_item_id,
        items_indexed=row.items_indexed,
        last_synced_at=row.last_synced_at,
    )


class CheckpointStore:
    """Narrow read/upsert interface over the ``sync_state`` table."""

    def __init__(self, db: DatabaseFactory):
        self.db = db

    async def get(self, key: str) -> Optional[CheckpointState]:
        """Return the checkpoint for ``key`` or None if no cycle has completed yet."""
        try:
            with self.db.session() as session:
                row = session.get(SyncCheckpoint, key)
                return _snapshot(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read checkpoint '{key}'") from e

    async def get_cursor(self, key: str) -> int:
        state = await self.get(key)
        return state.last_item_id if state else 0

    async def advance(self, key: str, new_last_id: int, synced_count: int) -> CheckpointState:
        """Upsert the checkpoint.

        The cursor becomes ``max(previous, new_last_id)`` and the indexed
        counter is incremented by ``synced_count``.
        """
        if synced_count < 0:
            raise ValueError("synced_count must be non-negative")
        try:
            with self.db.session() as session:
                row = session.execute(
                    select(SyncCheckpoint).where(SyncCheckpoint.id == key).with_for_update()
                ).scalar_one_or_none()
                now = utcnow()
                if row is None:
                    row = SyncCheckpoint(
                        id=key,
                        last_item_id=max(0, new_last_id),
                        items_indexed=synced_count,
                        last_synced_at=now,
                    )
                    session.add(row)
                else:
                    row.last_item_id = max(row.last_item_id, new_last_id)
                    row.items_indexed = row.items_indexed + synced_count
                    row.last_synced_at = now
                session.flush()
                state = _snapshot(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write checkpoint '{key}'") from e

        logger.debug(f"Checkpoint {key} advanced to {state.last_item_id} (+{synced_count})")
        return state

    async def reset(self, key: str) -> None:
        """Delete the checkpoint row so the next cycle starts from the beginning."""
        try:
            with self.db.session() as session:
                row = session.get(SyncCheckpoint, key)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to reset checkpoint '{key}'") from e
        logger.info(f"Checkpoint {key} reset")

    async def count(self) -> int:
        with self.db.session() as session:
            return session.execute(select(func.count()).select_from(SyncCheckpoint)).scalar_one()
