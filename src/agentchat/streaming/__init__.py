"""Stream events, wire codec and message assembly."""

from agentchat.streaming.assembler import MessageAssembler, assemble
from agentchat.streaming.codec import (
    DATA_STREAM_HEADERS,
    MEDIA_TYPE,
    StreamDecoder,
    StreamProtocolError,
    decode_line,
    decode_stream,
    encode,
    encode_line,
    encode_stream,
    iter_decode,
)
from agentchat.streaming.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    FinishStepEvent,
    ReasoningDeltaEvent,
    StartStepEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    Usage,
)
from agentchat.streaming.writer import DataStreamWriter

__all__ = [
    "DATA_STREAM_HEADERS",
    "MEDIA_TYPE",
    "DataEvent",
    "DataStreamWriter",
    "ErrorEvent",
    "FinishEvent",
    "FinishStepEvent",
    "MessageAssembler",
    "ReasoningDeltaEvent",
    "StartStepEvent",
    "StreamDecoder",
    "StreamEvent",
    "StreamProtocolError",
    "TextDeltaEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "Usage",
    "assemble",
    "decode_line",
    "decode_stream",
    "encode",
    "encode_line",
    "encode_stream",
    "iter_decode",
]
