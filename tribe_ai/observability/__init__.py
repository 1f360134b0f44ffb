"""Observability package for Tribe AI."""

from .logging import setup_logging, get_logger, get_structured_logger, StructuredLogger
from .metrics import (
    setup_prometheus_metrics,
    record_sync_cycle,
    PrometheusMiddleware,
    tribe_registry
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'setup_prometheus_metrics',
    'record_sync_cycle',
    'PrometheusMiddleware',
    'tribe_registry'
]
