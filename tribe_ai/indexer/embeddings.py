# Tribe AI Embeddings Module
# Text → fixed-length vector, via a local sentence transformer or OpenAI

import asyncio
import logging
import math
import time
from typing import List, Optional, Sequence

import numpy as np
from openai import AsyncOpenAI, OpenAIError
from sentence_transformers import SentenceTransformer

from ..config.settings import EmbeddingConfig, EmbeddingProvider
from ..errors import EmbeddingError
from ..observability.metrics import embedding_duration

logger = logging.getLogger(__name__)

OPENAI_BATCH_SIZE = 100


class BaseEmbedder:
    """Common behaviour for embedding backends.

    Subclasses implement ``_embed`` (single text) and ``_embed_batch``.
    Inputs are truncated to ``max_input_chars`` and every returned vector
    is checked for length and finiteness.
    """

    provider_name = "base"

    def __init__(self, model_name: str, max_input_chars: int = 8000):
        self.model_name = model_name
        self.max_input_chars = max_input_chars
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _truncate(self, text: str) -> str:
        return (text or "").strip()[:self.max_input_chars]

    def _validate(self, vector: Sequence[float]) -> List[float]:
        values = [float(v) for v in vector]
        if not values:
            raise EmbeddingError("Embedding provider returned an empty vector")
        if not all(math.isfinite(v) for v in values):
            raise EmbeddingError("Embedding contains non-finite values")
        if self._dimension is None:
            self._dimension = len(values)
        elif len(values) != self._dimension:
            raise EmbeddingError(f"Embedding dimension {len(values)} does not match expected {self._dimension}")
        return values

    async def generate_embedding(self, text: str) -> List[float]:
        """Generate an embedding for a single text."""
        start = time.time()
        try:
            vector = await self._embed(self._truncate(text))
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{self.provider_name} embedding failed: {e}") from e
        finally:
            embedding_duration.labels(provider=self.provider_name).observe(time.time() - start)
        return self._validate(vector)

    async def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts efficiently."""
        if not texts:
            return []
        try:
            vectors = await self._embed_batch([self._truncate(t) for t in texts])
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{self.provider_name} batch embedding failed: {e}") from e
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return [self._validate(v) for v in vectors]

    async def _embed(self, text: str) -> Sequence[float]:
        raise NotImplementedError

    async def _embed_batch(self, texts: List[str]) -> List[Sequence[float]]:
        return [await self._embed(t) for t in texts]


class SentenceTransformerEmbedder(BaseEmbedder):
    """Local sentence-transformers model; encoding runs in a worker thread."""

    provider_name = "sentence-transformers"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", max_input_chars: int = 8000):
        super().__init__(model_name, max_input_chars)
        self.model = None
        self._load_model()

    def _load_model(self):
        """Load the sentence transformer model"""
        try:
            logger.info(f"Loading embedding model: {self.model_name}")
            self.model = SentenceTransformer(self.model_name)
            self._dimension = self.model.get_sentence_embedding_dimension()
            logger.info(f"Model loaded successfully. Embedding dimension: {self._dimension}")
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            raise

    async def _embed(self, text: str) -> Sequence[float]:
        if not text:
            return np.zeros(self._dimension or 0).tolist()
        loop = asyncio.get_running_loop()
        embedding = await loop.run_in_executor(
            None, lambda: self.model.encode(text, convert_to_numpy=True)
        )
        return np.asarray(embedding, dtype=np.float32).tolist()

    async def _embed_batch(self, texts: List[str]) -> List[Sequence[float]]:
        loop = asyncio.get_running_loop()
        embeddings = await loop.run_in_executor(
            None, lambda: self.model.encode(texts, convert_to_numpy=True, show_progress_bar=False)
        )
        return [np.asarray(e, dtype=np.float32).tolist() for e in embeddings]


class OpenAIEmbedder(BaseEmbedder):
    """OpenAI embeddings API (text-embedding-3-small by default, 1536 dims)."""

    provider_name = "openai"

    def __init__(self, api_key: Optional[str], model_name: str = "text-embedding-3-small",
                 max_input_chars: int = 8000, client: Optional[AsyncOpenAI] = None):
        super().__init__(model_name, max_input_chars)
        if client is None and not api_key:
            raise EmbeddingError("OPENAI_API_KEY is not configured")
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def _embed(self, text: str) -> Sequence[float]:
        try:
            response = await self.client.embeddings.create(model=self.model_name, input=text)
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e
        if not response.data:
            raise EmbeddingError("OpenAI returned no embedding data")
        return response.data[0].embedding

    async def _embed_batch(self, texts: List[str]) -> List[Sequence[float]]:
        results: List[Sequence[float]] = []
        for i in range(0, len(texts), OPENAI_BATCH_SIZE):
            batch = texts[i:i + OPENAI_BATCH_SIZE]
            try:
                response = await self.client.embeddings.create(model=self.model_name, input=batch)
            except OpenAIError as e:
                raise EmbeddingError(f"OpenAI batch embedding request failed: {e}") from e
            results.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))
        return results


def create_embedder(config: EmbeddingConfig) -> BaseEmbedder:
    """Build the configured embedding backend."""
    if config.provider == EmbeddingProvider.OPENAI:
        return OpenAIEmbedder(
            api_key=config.openai_api_key,
            model_name=config.model_name,
            max_input_chars=config.max_input_chars,
        )
    return SentenceTransformerEmbedder(model_name=config.model_name, max_input_chars=config.max_input_chars)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors"""
    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    if a_arr.shape != b_arr.shape:
        raise ValueError("Vectors must have same length")

    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))
