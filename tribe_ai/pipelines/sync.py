"""Incremental forum → semantic index sync.

One cycle reads the checkpoint, fetches the next batch of eligible posts,
and for each post runs normalize → embed → upsert. A post that fails at
any step is recorded as skipped and the cycle moves on. The checkpoint
then advances to the highest id that was actually upserted, so a failed
post below that id is never revisited.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import PersistenceError, SyncInProgressError
from ..indexer.checkpoint_store import CheckpointStore
from ..indexer.embeddings import BaseEmbedder
from ..indexer.index_store import IndexStore
from ..indexer.normalizer import DEFAULT_MAX_EMBEDDING_CHARS, prepare_for_embedding
from ..indexer.source_fetcher import SourceFetcher
from ..observability.logging import get_structured_logger
from ..observability.metrics import record_sync_cycle, sync_checkpoint_cursor
from ..services.models import IndexDocumentInput, SourceItem

logger = logging.getLogger(__name__)


class SkipReason(str, Enum):
    """Why a source item was left out of the index."""
    NORMALIZE_FAILED = "normalize_failed"
    EMBEDDING_FAILED = "embedding_failed"
    EMBEDDING_TIMEOUT = "embedding_timeout"
    UPSERT_FAILED = "upsert_failed"


@dataclass(frozen=True)
class ItemResult:
    """Outcome for one source item: synced, or skipped with a reason."""
    item_id: int
    reason: Optional[SkipReason] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        # detail is logged only, never returned to callers
        return {
            "item_id": self.item_id,
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class SyncReport:
    checkpoint_key: str
    previous_checkpoint: int
    new_checkpoint: int
    results: List[ItemResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def synced_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def partial_failures(self) -> List[ItemResult]:
        return [r for r in self.results if not r.ok]

    @property
    def message(self) -> str:
        if not self.results:
            return "No new posts to sync"
        msg = f"Successfully synced {self.synced_count} posts"
        if self.partial_failures:
            msg += f" ({len(self.partial_failures)} skipped)"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synced": self.synced_count,
            "lastItemId": self.new_checkpoint,
            "message": self.message,
            "skipped": [r.to_dict() for r in self.partial_failures],
        }


@dataclass
class SyncStatus:
    last_synced_at: Optional[datetime]
    last_item_id: int
    items_indexed: int
    total_documents: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastSyncedAt": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "lastItemId": self.last_item_id,
            "itemsIndexed": self.items_indexed,
            "totalDocuments": self.total_documents,
        }


class SyncOrchestrator:
    """Drives sync cycles for one checkpoint key.

    At most one cycle runs at a time per orchestrator; a second caller gets
    ``SyncInProgressError`` instead of waiting.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        fetcher: SourceFetcher,
        embedder: BaseEmbedder,
        index: IndexStore,
        checkpoint_key: str = "flarum_posts",
        embedding_timeout: float = 30.0,
        fetch_timeout: float = 30.0,
        max_input_chars: int = DEFAULT_MAX_EMBEDDING_CHARS,
    ):
        self.checkpoints = checkpoints
        self.fetcher = fetcher
        self.embedder = embedder
        self.index = index
        self.checkpoint_key = checkpoint_key
        self.embedding_timeout = embedding_timeout
        self.fetch_timeout = fetch_timeout
        self.max_input_chars = max_input_chars
        self._lock = asyncio.Lock()
        self.log = get_structured_logger(__name__, checkpoint_key=checkpoint_key)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_sync_cycle(self, max_batch_size: int) -> SyncReport:
        """Run one cycle. Raises ``SyncInProgressError`` if a cycle is already running."""
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        if self._lock.locked():
            raise SyncInProgressError(self.checkpoint_key)
        async with self._lock:
            return await self._run_locked(max_batch_size)

    async def _run_locked(self, max_batch_size: int) -> SyncReport:
        start = time.time()
        try:
            cursor = await self.checkpoints.get_cursor(self.checkpoint_key)
            items = await asyncio.wait_for(
                self.fetcher.fetch_batch(cursor, max_batch_size), timeout=self.fetch_timeout
            )
        except Exception:
            record_sync_cycle("error", time.time() - start)
            raise

        report = SyncReport(self.checkpoint_key, previous_checkpoint=cursor, new_checkpoint=cursor)
        if not items:
            report.duration = time.time() - start
            record_sync_cycle("empty", report.duration)
            self.log.debug("No new posts to sync", cursor=cursor)
            return report

        new_last_id = cursor
        for item in items:
            result = await self._process_item(item)
            report.results.append(result)
            if result.ok:
                new_last_id = max(new_last_id, item.id)

        try:
            state = await self.checkpoints.advance(self.checkpoint_key, new_last_id, report.synced_count)
        except PersistenceError:
            report.duration = time.time() - start
            record_sync_cycle("error", report.duration, report.synced_count, len(report.partial_failures))
            self.log.exception("Checkpoint write failed; items will be re-processed next cycle",
                               cursor=cursor, synced=report.synced_count)
            raise

        report.new_checkpoint = state.last_item_id
        report.duration = time.time() - start
        sync_checkpoint_cursor.labels(checkpoint=self.checkpoint_key).set(state.last_item_id)
        status = "partial" if report.partial_failures else "success"
        record_sync_cycle(status, report.duration, report.synced_count, len(report.partial_failures))
        self.log.info(
            "Sync cycle finished",
            cursor=cursor,
            new_cursor=report.new_checkpoint,
            synced=report.synced_count,
            skipped=len(report.partial_failures),
        )
        return report

    async def _process_item(self, item: SourceItem) -> ItemResult:
        try:
            normalized = prepare_for_embedding(
                item.discussion_title, item.content, item.username, self.max_input_chars
            )
        except Exception as e:
            return self._skip(item, SkipReason.NORMALIZE_FAILED, e)

        try:
            embedding = await asyncio.wait_for(
                self.embedder.generate_embedding(normalized.embedding_text),
                timeout=self.embedding_timeout,
            )
        except asyncio.TimeoutError as e:
            return self._skip(item, SkipReason.EMBEDDING_TIMEOUT, e)
        except Exception as e:
            return self._skip(item, SkipReason.EMBEDDING_FAILED, e)

        document = IndexDocumentInput(
            discussion_id=item.discussion_id,
            post_number=item.post_number or 1,
            title=item.discussion_title,
            slug=item.discussion_slug,
            content=normalized.cleaned_body,
            username=item.username,
            embedding=embedding,
            is_private=item.is_private,
            group_ids=[],
        )
        try:
            await self.index.upsert(item.id, document)
        except Exception as e:
            return self._skip(item, SkipReason.UPSERT_FAILED, e)

        return ItemResult(item_id=item.id)

    def _skip(self, item: SourceItem, reason: SkipReason, error: BaseException) -> ItemResult:
        detail = str(error) or type(error).__name__
        self.log.warning("Skipping post", item_id=item.id, reason=reason.value, error=detail)
        return ItemResult(item_id=item.id, reason=reason, detail=detail)

    async def get_status(self) -> SyncStatus:
        state = await self.checkpoints.get(self.checkpoint_key)
        total = await self.index.count()
        return SyncStatus(
            last_synced_at=state.last_synced_at if state else None,
            last_item_id=state.last_item_id if state else 0,
            items_indexed=state.items_indexed if state else 0,
            total_documents=total,
        )

    async def count_pending(self) -> int:
        """Eligible source items above the current cursor."""
        cursor = await self.checkpoints.get_cursor(self.checkpoint_key)
        return await self.fetcher.count_pending(cursor)

    async def run_full_backfill(self, max_batch_size: int, clear_index: bool = False,
                                max_cycles: Optional[int] = None) -> List[SyncReport]:
        """Run cycles until the source is drained.

        With ``clear_index`` the index and checkpoint are wiped first, so
        every eligible post is re-embedded from the beginning.
        """
        if clear_index:
            if self._lock.locked():
                raise SyncInProgressError(self.checkpoint_key)
            async with self._lock:
                removed = await self.index.clear()
                await self.checkpoints.reset(self.checkpoint_key)
            logger.info(f"Full backfill: cleared {removed} indexed documents")

        reports: List[SyncReport] = []
        while max_cycles is None or len(reports) < max_cycles:
            report = await self.run_sync_cycle(max_batch_size)
            reports.append(report)
            if not report.results:
                break
            if report.new_checkpoint == report.previous_checkpoint:
                # Whole batch failed; the cursor cannot move so stop here
                logger.warning("Backfill stopped: no item in the batch could be synced")
                break
        return reports
