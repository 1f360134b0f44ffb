"""Exception types shared across the sync pipeline and chat transport."""

from typing import Optional


class TribeAIError(Exception):
    """Base class for all Tribe AI errors."""


class EmbeddingError(TribeAIError):
    """Embedding generation failed (remote error, timeout or malformed vector)."""


class SearchProviderError(TribeAIError):
    """External web search failed."""


class PersistenceError(TribeAIError):
    """Writing to the checkpoint or index store failed."""


class SyncInProgressError(TribeAIError):
    """A sync cycle already holds the checkpoint lock."""

    def __init__(self, checkpoint_key: str):
        super().__init__(f"Sync already running for checkpoint '{checkpoint_key}'")
        self.checkpoint_key = checkpoint_key


class ChatUpstreamError(TribeAIError):
    """The chat completion provider returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StreamProtocolError(TribeAIError):
    """The chat endpoint refused the request before streaming started."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
