#!/usr/bin/env python3
"""
Client for the Tribe AI streaming chat API.
Consumes the metadata-then-tokens response of POST /api/chat.
"""

import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import StreamProtocolError
from .framing import ChunkCallback, ErrorCallback, MetadataCallback, consume_chat_stream

logger = logging.getLogger(__name__)


class ChatStreamClient:
    """Client for consuming streamed chat responses."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 120.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        on_metadata: Optional[MetadataCallback] = None,
        on_chunk: Optional[ChunkCallback] = None,
        on_metadata_error: Optional[ErrorCallback] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> str:
        """Send the conversation and stream the reply.

        Returns the full reply text. Cancelling the calling task closes
        the HTTP response and no further callbacks fire.
        """
        if session is not None:
            return await self._stream(session, messages, on_metadata, on_chunk, on_metadata_error)
        async with aiohttp.ClientSession(timeout=self.timeout) as own_session:
            return await self._stream(own_session, messages, on_metadata, on_chunk, on_metadata_error)

    async def _stream(self, session, messages, on_metadata, on_chunk, on_metadata_error) -> str:
        url = f"{self.base_url}/api/chat"
        async with session.post(url, json={"messages": messages}) as response:
            if response.status != 200:
                raise StreamProtocolError(await self._error_message(response), status_code=response.status)
            return await consume_chat_stream(
                response.content.iter_any(),
                on_metadata=on_metadata,
                on_chunk=on_chunk,
                on_metadata_error=on_metadata_error,
            )

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        try:
            data: Any = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            data = None
        if isinstance(data, dict):
            detail = data.get("error") or data.get("detail")
            if isinstance(detail, str):
                return detail
        return f"API request failed with status {response.status}"


async def demo_chat(question: str, base_url: str = "http://localhost:8000"):
    """Stream one answer to stdout."""
    client = ChatStreamClient(base_url)

    def show_metadata(metadata: Dict[str, Any]):
        for result in metadata.get("forumResults", []):
            print(f"📌 {result['title']} - {result['link']}")
        print()

    def show_chunk(text: str):
        sys.stdout.write(text)
        sys.stdout.flush()

    await client.stream_chat(
        [{"type": "user", "content": question}],
        on_metadata=show_metadata,
        on_chunk=show_chunk,
    )
    print()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m tribe_ai.streaming.client \"your question\" [base_url]", file=sys.stderr)
        sys.exit(1)
    asyncio.run(demo_chat(sys.argv[1], *sys.argv[2:3]))
