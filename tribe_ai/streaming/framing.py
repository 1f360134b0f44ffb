"""Two-phase chat stream framing.

Wire format of a chat response body::

    <metadata JSON object>\\n__JSON_END__\\n<token stream ...>

The metadata is serialized as compact JSON, which never contains a raw
newline, so the delimiter cannot occur inside it. Everything after the
delimiter is opaque text delivered to the caller as it arrives.
"""

import codecs
import inspect
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

METADATA_DELIMITER = "\n__JSON_END__\n"


class ParserState(str, Enum):
    AWAITING_METADATA = "awaiting_metadata"
    STREAMING_BODY = "streaming_body"
    CLOSED = "closed"


@dataclass(frozen=True)
class MetadataEvent:
    metadata: Dict[str, Any]


@dataclass(frozen=True)
class MetadataErrorEvent:
    error: str
    raw: str


@dataclass(frozen=True)
class BodyEvent:
    text: str


StreamEvent = Union[MetadataEvent, MetadataErrorEvent, BodyEvent]


def encode_metadata_frame(metadata: Dict[str, Any]) -> str:
    """Serialize the metadata header, delimiter included."""
    return json.dumps(metadata, ensure_ascii=False, separators=(",", ":"), default=str) + METADATA_DELIMITER


async def frame_chat_stream(metadata: Dict[str, Any], tokens: AsyncIterable[str]) -> AsyncIterator[str]:
    """Server side: emit the metadata frame, then every non-empty token.

    Closing this generator early also closes ``tokens``, even if it was
    never started, so the upstream connection behind it is released.
    """
    try:
        yield encode_metadata_frame(metadata)
        async for token in tokens:
            if token:
                yield token
    finally:
        aclose = getattr(tokens, "aclose", None)
        if aclose is not None:
            await aclose()


class ChatStreamParser:
    """Incremental consumer-side parser.

    ``feed`` accepts str or bytes chunks in transport order and returns
    the events they complete. The delimiter may straddle chunk
    boundaries. Once the header is split off, chunks pass straight
    through as body events.
    """

    def __init__(self, delimiter: str = METADATA_DELIMITER):
        if not delimiter:
            raise ValueError("delimiter must be non-empty")
        self.delimiter = delimiter
        self.state = ParserState.AWAITING_METADATA
        self._buffer = ""
        self._scan_from = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _decode(self, chunk: Union[str, bytes], final: bool = False) -> str:
        if isinstance(chunk, (bytes, bytearray)):
            return self._decoder.decode(bytes(chunk), final=final)
        return chunk

    def feed(self, chunk: Union[str, bytes]) -> List[StreamEvent]:
        if self.state == ParserState.CLOSED:
            return []
        text = self._decode(chunk)
        if not text:
            return []
        if self.state == ParserState.STREAMING_BODY:
            return [BodyEvent(text)]

        self._buffer += text
        idx = self._buffer.find(self.delimiter, self._scan_from)
        if idx == -1:
            # Only the tail can still hold the start of a split delimiter
            self._scan_from = max(0, len(self._buffer) - len(self.delimiter) + 1)
            return []

        header = self._buffer[:idx]
        rest = self._buffer[idx + len(self.delimiter):]
        self._buffer = ""
        self._scan_from = 0
        self.state = ParserState.STREAMING_BODY

        events: List[StreamEvent] = [self._parse_header(header)]
        if rest:
            events.append(BodyEvent(rest))
        return events

    def _parse_header(self, header: str) -> StreamEvent:
        try:
            metadata = json.loads(header)
        except ValueError as e:
            logger.error(f"Failed to parse stream metadata: {e}")
            return MetadataErrorEvent(error=str(e), raw=header)
        if not isinstance(metadata, dict):
            logger.error(f"Stream metadata is not an object: {type(metadata).__name__}")
            return MetadataErrorEvent(error="metadata is not a JSON object", raw=header)
        return MetadataEvent(metadata)

    def close(self) -> List[StreamEvent]:
        """Signal end of stream and flush whatever is pending."""
        if self.state == ParserState.CLOSED:
            return []
        tail = self._decode(b"", final=True)
        events: List[StreamEvent] = []
        if self.state == ParserState.AWAITING_METADATA:
            pending = self._buffer + tail
            if pending:
                logger.warning("Stream ended before the metadata delimiter; delivering buffered text as body")
                events.append(BodyEvent(pending))
        elif tail:
            events.append(BodyEvent(tail))
        self._buffer = ""
        self.state = ParserState.CLOSED
        return events

    def cancel(self) -> None:
        """Stop parsing; later ``feed``/``close`` calls yield nothing."""
        self._buffer = ""
        self.state = ParserState.CLOSED


MetadataCallback = Callable[[Dict[str, Any]], Any]
ChunkCallback = Callable[[str], Any]
ErrorCallback = Callable[[str], Any]


async def _call(callback: Optional[Callable], arg: Any) -> None:
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


async def consume_chat_stream(
    chunks: AsyncIterable[Union[str, bytes]],
    on_metadata: Optional[MetadataCallback] = None,
    on_chunk: Optional[ChunkCallback] = None,
    on_metadata_error: Optional[ErrorCallback] = None,
) -> str:
    """Drain ``chunks`` through a ``ChatStreamParser``.

    Metadata is delivered once, before any body chunk. Returns the full
    body text. If the surrounding task is cancelled, no callback fires
    afterwards and the cancellation propagates.
    """
    parser = ChatStreamParser()
    body: List[str] = []

    async def dispatch(events: List[StreamEvent]) -> None:
        for event in events:
            if isinstance(event, MetadataEvent):
                await _call(on_metadata, event.metadata)
            elif isinstance(event, MetadataErrorEvent):
                await _call(on_metadata_error, event.error)
            else:
                body.append(event.text)
                await _call(on_chunk, event.text)

    try:
        async for chunk in chunks:
            await dispatch(parser.feed(chunk))
        await dispatch(parser.close())
    except BaseException:
        parser.cancel()
        raise
    return "".join(body)
