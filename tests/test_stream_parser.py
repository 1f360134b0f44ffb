"""Tests for chat stream framing and the incremental consumer-side parser."""

import asyncio
import json
import logging

import pytest

from tribe_ai.streaming.framing import (
    METADATA_DELIMITER, BodyEvent, ChatStreamParser, MetadataErrorEvent, MetadataEvent, ParserState,
    consume_chat_stream, encode_metadata_frame, frame_chat_stream,
)


async def aiter_chunks(chunks):
    for chunk in chunks:
        yield chunk


class ClosableTokens:

    def __init__(self, tokens):
        self.tokens = tokens
        self.sent = []
        self.closed = False

    async def __aiter__(self):
        for token in self.tokens:
            self.sent.append(token)
            yield token

    async def aclose(self):
        self.closed = True


def body_text(events):
    return "".join(e.text for e in events if isinstance(e, BodyEvent))


class TestFraming:

    def test_metadata_frame_is_single_line_json(self):
        frame = encode_metadata_frame({"intent": "greeting", "note": "line one\nline two"})
        header, _, rest = frame.partition(METADATA_DELIMITER)

        assert rest == ""
        assert "\n" not in header
        assert json.loads(header)["note"] == "line one\nline two"

    async def test_frame_chat_stream_emits_header_then_tokens(self):
        out = [c async for c in frame_chat_stream({"a": 1}, aiter_chunks(["Hel", "", "lo"]))]
        assert out == ['{"a":1}' + METADATA_DELIMITER, "Hel", "lo"]

    async def test_closing_after_header_closes_token_source(self):
        source = ClosableTokens(["never", "sent"])
        stream = frame_chat_stream({"a": 1}, source)

        header = await stream.__anext__()
        await stream.aclose()

        assert header.endswith(METADATA_DELIMITER)
        assert source.closed
        assert source.sent == []


class TestChatStreamParser:

    def test_single_chunk(self):
        parser = ChatStreamParser()
        events = parser.feed('{"intent":"forum_search"}' + METADATA_DELIMITER + "Hello")

        assert events == [MetadataEvent({"intent": "forum_search"}), BodyEvent("Hello")]
        assert parser.state == ParserState.STREAMING_BODY

    def test_delimiter_split_across_chunks(self):
        parser = ChatStreamParser()
        chunks = ['{"x": 1}\n__JS', "ON_E", "ND__\nHi", " there"]

        events = [e for chunk in chunks for e in parser.feed(chunk)] + parser.close()

        assert events[0] == MetadataEvent({"x": 1})
        assert body_text(events) == "Hi there"

    def test_one_character_at_a_time(self):
        stream = '{"forumResults":[],"webResults":[]}' + METADATA_DELIMITER + "Answer text"
        parser = ChatStreamParser()

        events = [e for ch in stream for e in parser.feed(ch)] + parser.close()

        metadata = [e for e in events if isinstance(e, MetadataEvent)]
        assert metadata == [MetadataEvent({"forumResults": [], "webResults": []})]
        assert body_text(events) == "Answer text"

    def test_body_containing_delimiter_passes_through(self):
        parser = ChatStreamParser()
        parser.feed("{}" + METADATA_DELIMITER)
        events = parser.feed("code sample" + METADATA_DELIMITER + "more")
        assert body_text(events) == "code sample" + METADATA_DELIMITER + "more"

    def test_malformed_metadata_reported_and_body_continues(self, caplog):
        parser = ChatStreamParser()
        with caplog.at_level(logging.ERROR, logger="tribe_ai.streaming.framing"):
            events = parser.feed("{not json" + METADATA_DELIMITER + "Body")

        assert isinstance(events[0], MetadataErrorEvent)
        assert events[0].raw == "{not json"
        assert events[1] == BodyEvent("Body")
        assert "Failed to parse stream metadata" in caplog.text

    def test_non_object_metadata_is_an_error(self):
        parser = ChatStreamParser()
        events = parser.feed("[1, 2]" + METADATA_DELIMITER)
        assert isinstance(events[0], MetadataErrorEvent)

    def test_empty_stream(self):
        parser = ChatStreamParser()
        assert parser.close() == []
        assert parser.state == ParserState.CLOSED

    def test_stream_without_delimiter_flushes_as_body(self):
        parser = ChatStreamParser()
        assert parser.feed("plain text reply") == []
        assert parser.close() == [BodyEvent("plain text reply")]

    def test_multibyte_character_split_across_byte_chunks(self):
        payload = ('{"t":"ok"}' + METADATA_DELIMITER + "namaste 🙏 done").encode("utf-8")
        split = payload.index("🙏".encode("utf-8")) + 2
        parser = ChatStreamParser()

        events = parser.feed(payload[:split]) + parser.feed(payload[split:]) + parser.close()

        assert body_text(events) == "namaste 🙏 done"
        assert "�" not in body_text(events)

    def test_cancel_stops_all_events(self):
        parser = ChatStreamParser()
        parser.feed("{}" + METADATA_DELIMITER + "a")
        parser.cancel()
        assert parser.feed("b") == []
        assert parser.close() == []

    def test_empty_delimiter_rejected(self):
        with pytest.raises(ValueError):
            ChatStreamParser(delimiter="")


class TestConsumeChatStream:

    async def test_metadata_delivered_once_before_body(self):
        calls = []

        body = await consume_chat_stream(
            aiter_chunks(['{"intent":"greeting"}\n__JSON', "_END__\nHey", " there"]),
            on_metadata=lambda m: calls.append(("meta", m)),
            on_chunk=lambda c: calls.append(("chunk", c)),
        )

        assert body == "Hey there"
        assert calls[0] == ("meta", {"intent": "greeting"})
        assert [c for kind, c in calls if kind == "chunk"] == ["Hey", " there"]
        assert sum(1 for kind, _ in calls if kind == "meta") == 1

    async def test_async_callbacks_supported(self):
        seen = []

        async def on_chunk(text):
            seen.append(text)

        await consume_chat_stream(aiter_chunks(["{}" + METADATA_DELIMITER + "x"]), on_chunk=on_chunk)
        assert seen == ["x"]

    async def test_metadata_error_callback(self):
        errors = []
        body = await consume_chat_stream(
            aiter_chunks(["oops" + METADATA_DELIMITER + "still here"]),
            on_metadata_error=errors.append,
        )
        assert len(errors) == 1
        assert body == "still here"

    async def test_cancellation_suppresses_further_callbacks(self):
        release = asyncio.Event()
        chunks_seen = []

        async def slow_stream():
            yield "{}" + METADATA_DELIMITER + "first"
            await release.wait()
            yield "second"

        task = asyncio.create_task(consume_chat_stream(slow_stream(), on_chunk=chunks_seen.append))
        while not chunks_seen:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()
        assert chunks_seen == ["first"]
