"""Chat backend: forum-aware RAG over an OpenAI-compatible completion API.

The reply is streamed as a metadata frame (forum results, web results,
intent) followed by the raw completion tokens.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

import aiohttp
from pydantic import BaseModel, Field, field_validator

from ..config.settings import ChatConfig
from ..errors import ChatUpstreamError
from ..indexer.embeddings import BaseEmbedder
from ..indexer.index_store import IndexStore, post_link
from ..indexer.normalizer import snippet
from ..observability.metrics import chat_streams
from ..pipelines.web_search import WebSearchClient, WebSearchResult
from ..streaming.framing import frame_chat_stream

logger = logging.getLogger(__name__)

FORUM_RESULT_LIMIT = 5
MIN_SIMILARITY = 0.3

_GREETING = re.compile(r"^(hi|hello|hey|yo|sup|hii+|heyy+|good\s*(morning|afternoon|evening))[\s!.,?]*$", re.I)
_GENERAL_QUESTION = [
    re.compile(r"^what\s+is\s+(the\s+)?(definition|meaning)\s+of\b", re.I),
    re.compile(r"^(define|explain|describe)\s+the\s+(concept|term|word)\b", re.I),
    re.compile(r"^(who|what|when|where)\s+(is|was|were|are)\s+[a-z]+\s*(in\s+history)?$", re.I),
    re.compile(r"^how\s+(does|do)\s+[a-z]+\s+work\s*\?*$", re.I),
    re.compile(r"^what\s+year\s+(did|was)\b", re.I),
    re.compile(r"^(calculate|compute|solve)\b", re.I),
]

Intent = Literal["forum_search", "general_question", "greeting"]


class ClientMessage(BaseModel):
    type: Literal["user", "ai", "system"]
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content cannot be empty")
        return value


class ChatRequest(BaseModel):
    messages: List[ClientMessage] = Field(min_length=1, max_length=50)


@dataclass
class ForumContext:
    intent: Intent
    forum_results: List[Dict[str, Any]] = field(default_factory=list)
    web_results: List[WebSearchResult] = field(default_factory=list)

    def metadata(self, forum_url: str) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "forumResults": [
                {
                    "title": r["title"],
                    "link": post_link(forum_url, r["discussion_id"], r["slug"], r["post_number"]),
                    "snippet": snippet(r["content"], 150),
                    "username": r["username"],
                }
                for r in self.forum_results
            ],
            "webResults": [r.to_dict() for r in self.web_results],
        }


def classify_intent(message: str) -> Intent:
    text = message.strip().lower()
    if _GREETING.match(text):
        return "greeting"
    if any(p.search(text) for p in _GENERAL_QUESTION):
        return "general_question"
    return "forum_search"


def build_system_prompt(context: ForumContext, forum_url: str) -> str:
    identity = (
        "You are TribeAI, the friendly AI assistant for the JAIN University student community forum called Tribe.\n"
        "Be warm and concise, use emojis sparingly, and encourage community participation.\n"
        f"FORUM URL: {forum_url}"
    )
    if context.intent == "greeting":
        return identity + "\n\nRespond with a brief, warm greeting and mention what you can help with. 👋"

    blocks = []
    if context.forum_results:
        lines = [
            f"[{i}] {r['title']} by @{r['username']}\nLink: "
            f"{post_link(forum_url, r['discussion_id'], r['slug'], r['post_number'])}\n\"{snippet(r['content'], 300)}\""
            for i, r in enumerate(context.forum_results, 1)
        ]
        blocks.append("==== COMMUNITY DISCUSSIONS (Tribe Forum) ====\n" + "\n\n".join(lines))
    if context.web_results:
        lines = [
            f"[WEB-{i}] {r.title}\nSource: {r.url}\n\"{r.snippet}\""
            for i, r in enumerate(context.web_results, 1)
        ]
        blocks.append("==== WEB UPDATES (External Info) ====\n" + "\n\n".join(lines))

    if context.intent == "general_question" and not context.forum_results:
        return identity + "\n\nThis is a general knowledge question. Answer it directly and helpfully."

    prompt = identity
    if blocks:
        prompt += "\n\n" + "\n\n".join(blocks)
    prompt += (
        "\n\nGUIDELINES:\n"
        "1. Mention relevant forum discussions first and cite them as [Discussion Title](Link).\n"
        "2. Use web results to fill gaps.\n"
        "3. If there are no forum discussions, suggest the user start one."
    )
    return prompt


class ChatService:
    """Builds forum context and opens the upstream completion stream."""

    def __init__(self, config: ChatConfig, index: IndexStore, web_search: WebSearchClient,
                 embedder: Optional[BaseEmbedder] = None):
        self.config = config
        self.index = index
        self.web_search = web_search
        self.embedder = embedder

    async def _forum_results(self, query: str) -> List[Dict[str, Any]]:
        if self.embedder is not None:
            try:
                vector = await self.embedder.generate_embedding(query)
                ranked = await self.index.semantic_search(vector, FORUM_RESULT_LIMIT, MIN_SIMILARITY)
                if ranked:
                    return [doc for doc, _ in ranked]
            except Exception as e:
                logger.warning(f"Semantic forum search failed, falling back to keywords: {e}")
        keywords = [w for w in re.findall(r"[a-z0-9]+", query.lower()) if len(w) > 3]
        return await self.index.keyword_search(keywords, FORUM_RESULT_LIMIT)

    async def _web_results(self, query: str) -> List[WebSearchResult]:
        if len(query) <= 3:
            return []
        return await self.web_search.search(query)

    async def build_context(self, message: str) -> ForumContext:
        intent = classify_intent(message)
        if intent == "greeting":
            return ForumContext(intent=intent)

        forum_task = self._forum_results(message) if intent == "forum_search" else asyncio.sleep(0, result=[])
        forum, web = await asyncio.gather(forum_task, self._web_results(message), return_exceptions=True)
        if isinstance(forum, Exception):
            logger.warning(f"Forum context unavailable: {forum}")
            forum = []
        if isinstance(web, Exception):
            logger.warning(f"Web context unavailable: {web}")
            web = []
        return ForumContext(intent=intent, forum_results=forum, web_results=web)

    def upstream_messages(self, request: ChatRequest, system_prompt: str) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        for msg in request.messages:
            messages.append({
                "role": "assistant" if msg.type == "ai" else "user",
                "content": msg.content,
            })
        return messages

    async def open_reply_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Prepare context and connect upstream.

        Raises ``ChatUpstreamError`` before anything is streamed if the
        provider is not configured or rejects the request. The returned
        iterator yields the framed response and closes the upstream
        connection when exhausted or closed.
        """
        if not self.config.api_key:
            raise ChatUpstreamError("Server configuration error: Missing API Key", status_code=500)

        latest = next((m for m in reversed(request.messages) if m.type == "user"), None)
        context = await self.build_context(latest.content) if latest else ForumContext(intent="forum_search")
        payload = {
            "model": self.config.model,
            "messages": self.upstream_messages(request, build_system_prompt(context, self.config.forum_url)),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "top_p": self.config.top_p,
            "presence_penalty": self.config.presence_penalty,
            "frequency_penalty": self.config.frequency_penalty,
            "stream": True,
        }

        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.request_timeout))
        try:
            response = await session.post(
                self.config.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await session.close()
            chat_streams.labels(status="upstream_error").inc()
            raise ChatUpstreamError(f"Upstream API unreachable: {e}", status_code=502) from e

        if response.status != 200:
            message = await _upstream_error_message(response)
            status = response.status
            response.release()
            await session.close()
            chat_streams.labels(status="upstream_error").inc()
            raise ChatUpstreamError(message, status_code=429 if status == 429 else 502)

        return frame_chat_stream(context.metadata(self.config.forum_url), CompletionStream(session, response))


async def _upstream_error_message(response: aiohttp.ClientResponse) -> str:
    try:
        data = await response.json(content_type=None)
        message = data.get("error", {}).get("message")
        if message:
            return message
    except (aiohttp.ContentTypeError, ValueError, AttributeError):
        pass
    return f"Upstream API error: {response.status} {response.reason}"


class CompletionStream:
    """Content deltas of an OpenAI-style SSE completion.

    Owns the upstream session. ``aclose`` releases the response and the
    session exactly once, whether or not iteration ever started.
    """

    def __init__(self, session: aiohttp.ClientSession, response: aiohttp.ClientResponse):
        self.session = session
        self.response = response
        self.status = "success"
        self.closed = False
        self._finished = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._tokens()

    async def _tokens(self) -> AsyncIterator[str]:
        try:
            async for raw in self.response.content:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except ValueError:
                    continue
                for choice in chunk.get("choices") or []:
                    content = (choice.get("delta") or {}).get("content")
                    if content:
                        yield content
            self._finished = True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.status = "interrupted"
            logger.error(f"Upstream stream interrupted: {e}")
        except asyncio.CancelledError:
            self.status = "cancelled"
            raise
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.status == "success" and not self._finished:
            self.status = "cancelled"
        chat_streams.labels(status=self.status).inc()
        self.response.release()
        await self.session.close()
