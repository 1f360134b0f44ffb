"""Shared models for Tribe AI."""

from .models import (
    Base,
    IndexDocumentInput,
    IndexedDocument,
    SourceItem,
    SyncCheckpoint,
    utcnow,
)

__all__ = [
    'Base',
    'IndexDocumentInput',
    'IndexedDocument',
    'SourceItem',
    'SyncCheckpoint',
    'utcnow',
]
