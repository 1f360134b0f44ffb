"""Tribe AI: forum-to-vector sync pipeline and streamed RAG chat API."""

__version__ = "0.3.0"
