"""Tests for the aiohttp chat stream client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tribe_ai.errors import StreamProtocolError
from tribe_ai.streaming.client import ChatStreamClient


def session_returning(status, chunks=(), payload=None):
    async def iter_any():
        for chunk in chunks:
            yield chunk

    response = MagicMock()
    response.status = status
    response.content.iter_any = iter_any
    response.json = AsyncMock(return_value=payload)
    session = MagicMock()
    session.post.return_value.__aenter__.return_value = response
    return session


class TestChatStreamClient:

    async def test_streams_metadata_and_body(self):
        session = session_returning(200, [b'{"intent":"forum_search"}\n__JSON_', b"END__\nHello", b" world"])
        metadata, chunks = [], []

        reply = await ChatStreamClient("http://api.test/").stream_chat(
            [{"type": "user", "content": "hi"}],
            on_metadata=metadata.append,
            on_chunk=chunks.append,
            session=session,
        )

        assert reply == "Hello world"
        assert metadata == [{"intent": "forum_search"}]
        assert chunks == ["Hello", " world"]
        args, kwargs = session.post.call_args
        assert args[0] == "http://api.test/api/chat"
        assert kwargs["json"] == {"messages": [{"type": "user", "content": "hi"}]}

    async def test_non_200_raises_with_server_message(self):
        session = session_returning(429, payload={"error": "Rate limit exceeded"})

        with pytest.raises(StreamProtocolError) as exc_info:
            await ChatStreamClient().stream_chat([{"type": "user", "content": "hi"}], session=session)

        assert str(exc_info.value) == "Rate limit exceeded"
        assert exc_info.value.status_code == 429

    async def test_non_200_without_json_body(self):
        session = session_returning(500, payload=None)

        with pytest.raises(StreamProtocolError, match="status 500"):
            await ChatStreamClient().stream_chat([{"type": "user", "content": "hi"}], session=session)
