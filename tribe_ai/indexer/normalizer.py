"""Turns rich forum post HTML into text for storage and vectorization."""

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

DEFAULT_MAX_EMBEDDING_CHARS = 8000

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedContent:
    embedding_text: str
    cleaned_body: str


def clean_html_for_embedding(html: Optional[str]) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text(" ")
    return _WHITESPACE.sub(" ", text).strip()


def prepare_for_embedding(title: str, raw_body: Optional[str], author_name: str,
                          max_chars: int = DEFAULT_MAX_EMBEDDING_CHARS) -> NormalizedContent:
    """Build the single string sent to the embedding model.

    The text is hard-capped at ``max_chars`` characters by keeping the
    prefix, so the same input always yields the same embedding text.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    cleaned = clean_html_for_embedding(raw_body)
    text = f"Discussion: {title}\nBy: @{author_name}\nContent: {cleaned}"
    return NormalizedContent(embedding_text=text[:max_chars], cleaned_body=cleaned)


def snippet(text: str, length: int) -> str:
    """First ``length`` characters, with an ellipsis when cut."""
    if len(text) <= length:
        return text
    return text[:length] + "..."
