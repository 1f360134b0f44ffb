"""Chat stream framing (server) and incremental parsing (client)."""

from .client import ChatStreamClient
from .framing import (
    METADATA_DELIMITER,
    BodyEvent,
    ChatStreamParser,
    MetadataErrorEvent,
    MetadataEvent,
    ParserState,
    consume_chat_stream,
    encode_metadata_frame,
    frame_chat_stream,
)

__all__ = [
    'ChatStreamClient',
    'METADATA_DELIMITER',
    'BodyEvent',
    'ChatStreamParser',
    'MetadataErrorEvent',
    'MetadataEvent',
    'ParserState',
    'consume_chat_stream',
    'encode_metadata_frame',
    'frame_chat_stream',
]
