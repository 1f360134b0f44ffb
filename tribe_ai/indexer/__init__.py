"""Indexing components: checkpoint, source, normalization, embeddings, index."""

from .checkpoint_store import CheckpointState, CheckpointStore
from .embeddings import (
    BaseEmbedder,
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    cosine_similarity,
    create_embedder,
)
from .index_store import IndexStore, post_link
from .normalizer import NormalizedContent, clean_html_for_embedding, prepare_for_embedding
from .source_fetcher import SourceFetcher, flarum_metadata

__all__ = [
    'CheckpointState',
    'CheckpointStore',
    'BaseEmbedder',
    'OpenAIEmbedder',
    'SentenceTransformerEmbedder',
    'cosine_similarity',
    'create_embedder',
    'IndexStore',
    'post_link',
    'NormalizedContent',
    'clean_html_for_embedding',
    'prepare_for_embedding',
    'SourceFetcher',
    'flarum_metadata',
]
