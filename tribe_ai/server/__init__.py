"""FastAPI application, chat backend and sync scheduling."""

from .api import Components, build_components, create_app
from .chat import ChatRequest, ChatService, ClientMessage, classify_intent
from .scheduler import SyncScheduler
from .security import api_key_matches, require_api_key

__all__ = [
    "Components",
    "build_components",
    "create_app",
    "ChatRequest",
    "ChatService",
    "ClientMessage",
    "classify_intent",
    "SyncScheduler",
    "api_key_matches",
    "require_api_key",
]
