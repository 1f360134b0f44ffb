"""HTTP surface: sync trigger, events feed, streamed chat, health and metrics.

Run with ``uvicorn tribe_ai.server.api:create_app --factory`` or the
``tribe-ai serve`` command.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config.database import DatabaseFactory
from ..config.settings import Settings
from ..errors import ChatUpstreamError, SyncInProgressError
from ..indexer.checkpoint_store import CheckpointStore
from ..indexer.embeddings import BaseEmbedder, create_embedder
from ..indexer.index_store import IndexStore
from ..indexer.source_fetcher import SourceFetcher
from ..observability.metrics import setup_prometheus_metrics
from ..pipelines.events import EventsService
from ..pipelines.sync import SyncOrchestrator
from ..pipelines.web_search import WebSearchClient
from .chat import ChatRequest, ChatService
from .scheduler import SyncScheduler
from .security import require_api_key

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything a request handler or CLI command needs."""
    db: DatabaseFactory
    index: IndexStore
    orchestrator: SyncOrchestrator
    events: EventsService
    chat: ChatService


def build_components(settings: Settings, db: Optional[DatabaseFactory] = None,
                     embedder: Optional[BaseEmbedder] = None,
                     web_search: Optional[WebSearchClient] = None) -> Components:
    db = db or DatabaseFactory(settings.database)
    db.initialize()
    embedder = embedder or create_embedder(settings.embedding)
    web_search = web_search or WebSearchClient(settings.search)

    index = IndexStore(db)
    orchestrator = SyncOrchestrator(
        checkpoints=CheckpointStore(db),
        fetcher=SourceFetcher(db.source_engine),
        embedder=embedder,
        index=index,
        checkpoint_key=settings.sync.checkpoint_key,
        embedding_timeout=settings.sync.embedding_timeout,
        fetch_timeout=settings.sync.fetch_timeout,
        max_input_chars=settings.embedding.max_input_chars,
    )
    return Components(
        db=db,
        index=index,
        orchestrator=orchestrator,
        events=EventsService(index, web_search),
        chat=ChatService(settings.chat, index, web_search, embedder=embedder),
    )


def create_app(settings: Optional[Settings] = None, db: Optional[DatabaseFactory] = None,
               embedder: Optional[BaseEmbedder] = None,
               web_search: Optional[WebSearchClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        components = build_components(settings, db=db, embedder=embedder, web_search=web_search)
        app.state.components = components
        scheduler = SyncScheduler(
            components.orchestrator,
            interval_minutes=settings.sync.schedule_minutes,
            max_batch_size=settings.sync.max_batch_size,
        )
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Tribe AI API started")
        try:
            yield
        finally:
            scheduler.shutdown()
            components.db.close()
            logger.info("Tribe AI API stopped")

    app = FastAPI(title="Tribe AI API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    setup_prometheus_metrics(app)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    def get_components(request: Request) -> Components:
        return request.app.state.components

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.post("/api/sync", dependencies=[Depends(require_api_key)])
    async def trigger_sync(components: Components = Depends(get_components)):
        try:
            report = await components.orchestrator.run_sync_cycle(settings.sync.max_batch_size)
        except SyncInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception:
            logger.exception("Sync cycle failed")
            return JSONResponse({"error": "Sync failed"}, status_code=500)
        return report.to_dict()

    @app.get("/api/sync", dependencies=[Depends(require_api_key)])
    async def sync_status(components: Components = Depends(get_components)):
        try:
            status = await components.orchestrator.get_status()
        except Exception:
            logger.exception("Failed to read sync status")
            return JSONResponse({"error": "Failed to get status"}, status_code=500)
        return status.to_dict()

    @app.get("/api/events")
    async def events(components: Components = Depends(get_components)):
        items = await components.events.get_aggregated_events()
        return {"events": [item.to_dict() for item in items]}

    @app.post("/api/chat")
    async def chat(req: ChatRequest, components: Components = Depends(get_components)):
        try:
            stream = await components.chat.open_reply_stream(req)
        except ChatUpstreamError as e:
            logger.error(f"Chat upstream error: {e}")
            return JSONResponse({"error": str(e)}, status_code=e.status_code or 502)
        return StreamingResponse(
            stream,
            media_type="text/plain; charset=utf-8",
            headers={"Cache-Control": "no-cache"},
        )

    return app
