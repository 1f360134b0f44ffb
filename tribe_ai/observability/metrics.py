"""Prometheus metrics integration for the Tribe AI API."""

import logging
import os
import re
import time

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

tribe_registry = CollectorRegistry()

# Request metrics
request_count = Counter(
    'tribe_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=tribe_registry
)

request_duration = Histogram(
    'tribe_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=tribe_registry
)

# Sync metrics
sync_cycles = Counter(
    'tribe_sync_cycles_total',
    'Sync cycles by final status',
    ['status'],
    registry=tribe_registry
)

sync_items = Counter(
    'tribe_sync_items_total',
    'Source items processed by outcome',
    ['outcome'],
    registry=tribe_registry
)

sync_cycle_duration = Histogram(
    'tribe_sync_cycle_duration_seconds',
    'Sync cycle duration in seconds',
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=tribe_registry
)

sync_checkpoint_cursor = Gauge(
    'tribe_sync_checkpoint_cursor',
    'Last source item id covered by the checkpoint',
    ['checkpoint'],
    registry=tribe_registry
)

embedding_duration = Histogram(
    'tribe_embedding_duration_seconds',
    'Embedding generation duration in seconds',
    ['provider'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0],
    registry=tribe_registry
)

# Chat and search metrics
chat_streams = Counter(
    'tribe_chat_streams_total',
    'Chat streams by outcome',
    ['status'],
    registry=tribe_registry
)

external_search = Counter(
    'tribe_external_search_total',
    'Aggregation source calls by outcome',
    ['source', 'status'],
    registry=tribe_registry
)

app_info = Info(
    'tribe_app_info',
    'Tribe AI application information',
    registry=tribe_registry
)


class PrometheusMiddleware:
    """Middleware to collect Prometheus metrics for HTTP requests."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method
        endpoint = self._normalize_endpoint(request.url.path)
        start_time = time.time()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_count.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            request_duration.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        return re.sub(r'/\d+', '/{id}', path)


def setup_prometheus_metrics(app: FastAPI) -> None:
    """Setup Prometheus metrics collection for FastAPI app."""
    app.add_middleware(PrometheusMiddleware)

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return PlainTextResponse(generate_latest(tribe_registry), media_type=CONTENT_TYPE_LATEST)

    app_info.info({
        'version': os.getenv('APP_VERSION', 'unknown'),
        'environment': os.getenv('ENVIRONMENT', 'development'),
    })

    logger.info("Prometheus metrics configured")


def record_sync_cycle(status: str, duration: float, synced: int = 0, skipped: int = 0) -> None:
    """Record the outcome of one sync cycle."""
    sync_cycles.labels(status=status).inc()
    sync_cycle_duration.observe(duration)
    if synced:
        sync_items.labels(outcome="synced").inc(synced)
    if skipped:
        sync_items.labels(outcome="skipped").inc(skipped)
