"""Line-oriented wire codec for chat streams (Vercel AI data stream, v1).

Every event is one line ``<code>:<json>\\n``:

- ``0:"text"``                        text delta
- ``g:"text"``                        reasoning delta
- ``2:[{"type":..,"content":..}]``    data items (one event per item)
- ``3:"message"``                     error
- ``9:{toolCallId,toolName,args}``    tool call
- ``a:{toolCallId,result}``           tool result
- ``f:{messageId}``                   start of a generation step
- ``e:{finishReason,usage,isContinued}`` end of a generation step
- ``d:{finishReason,usage}``          end of the turn

The encoder yields one chunk per event so the transport can flush each event
as soon as it exists.  The decoder buffers partial lines and split UTF-8
sequences across chunk boundaries.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

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
)

DATA_STREAM_HEADERS = {
    "x-vercel-ai-data-stream": "v1",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
MEDIA_TYPE = "text/plain; charset=utf-8"

_STRING_CODES: dict[str, type[BaseModel]] = {
    "0": TextDeltaEvent,
    "g": ReasoningDeltaEvent,
}
_OBJECT_CODES: dict[str, type[BaseModel]] = {
    "9": ToolCallEvent,
    "a": ToolResultEvent,
    "f": StartStepEvent,
    "e": FinishStepEvent,
    "d": FinishEvent,
}
_CODE_BY_TYPE: dict[type[BaseModel], str] = {
    **{cls: code for code, cls in _STRING_CODES.items()},
    **{cls: code for code, cls in _OBJECT_CODES.items()},
    DataEvent: "2",
    ErrorEvent: "3",
}


class StreamProtocolError(ValueError):
    """A line on the wire is not a valid stream event."""


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=to_jsonable_python)


def encode_line(event: StreamEvent) -> str:
    """Serialize one event to its wire line, including the trailing newline."""
    code = _CODE_BY_TYPE[type(event)]
    if isinstance(event, (TextDeltaEvent, ReasoningDeltaEvent)):
        payload: Any = event.text
    elif isinstance(event, ErrorEvent):
        payload = event.message
    elif isinstance(event, DataEvent):
        payload = [{"type": event.data_type, "content": event.content}]
    else:
        payload = event.model_dump(by_alias=True, exclude={"type"})
    return f"{code}:{_dumps(payload)}\n"


def encode(event: StreamEvent) -> bytes:
    return encode_line(event).encode("utf-8")


async def encode_stream(events: AsyncIterable[StreamEvent]) -> AsyncIterator[bytes]:
    """Encode events one chunk at a time, without batching."""
    async for event in events:
        yield encode(event)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _decode_data_items(payload: Any) -> list[StreamEvent]:
    if not isinstance(payload, list):
        raise StreamProtocolError("data line payload must be a JSON array")
    events: list[StreamEvent] = []
    for item in payload:
        if not isinstance(item, dict) or not isinstance(item.get("type"), str):
            raise StreamProtocolError("data items must be objects with a string 'type'")
        if "content" in item:
            content = item["content"]
        else:
            content = {k: v for k, v in item.items() if k != "type"}
        events.append(DataEvent(data_type=item["type"], content=content))
    return events


def decode_line(line: str) -> list[StreamEvent]:
    """Parse one wire line (without its newline) into events.

    Blank lines yield nothing.  A data line yields one event per item.

    Raises:
        StreamProtocolError: unknown line code, malformed JSON, or a payload
            that does not match the event's shape.
    """
    line = line.rstrip("\r")
    if not line:
        return []

    code, sep, raw = line.partition(":")
    if not sep:
        raise StreamProtocolError(f"missing ':' separator in line {line[:40]!r}")
    if code not in _STRING_CODES and code not in _OBJECT_CODES and code not in ("2", "3"):
        raise StreamProtocolError(f"unknown line code {code!r}")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StreamProtocolError(f"invalid JSON for code {code!r}: {exc.msg}") from exc

    if code == "2":
        return _decode_data_items(payload)
    if code == "3" or code in _STRING_CODES:
        if not isinstance(payload, str):
            raise StreamProtocolError(f"code {code!r} expects a JSON string")
        if code == "3":
            return [ErrorEvent(message=payload)]
        return [_STRING_CODES[code](text=payload)]

    if not isinstance(payload, dict):
        raise StreamProtocolError(f"code {code!r} expects a JSON object")
    try:
        return [_OBJECT_CODES[code].model_validate(payload)]
    except ValidationError as exc:
        raise StreamProtocolError(f"invalid payload for code {code!r}: {exc.error_count()} error(s)") from exc


class StreamDecoder:
    """Incremental decoder fed with arbitrary byte chunks."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: bytes) -> Iterator[StreamEvent]:
        """Yield every event completed by *chunk*, in order.

        Events preceding a malformed line are yielded before the
        ``StreamProtocolError`` is raised.
        """
        try:
            self._buffer += self._utf8.decode(chunk)
        except UnicodeDecodeError as exc:
            raise StreamProtocolError(f"invalid UTF-8 in stream: {exc.reason}") from exc

        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                return
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            yield from decode_line(line)

    def close(self) -> str:
        """Finish decoding and return any dangling partial line."""
        try:
            leftover = self._buffer + self._utf8.decode(b"", final=True)
        except UnicodeDecodeError:
            leftover = self._buffer + "�"
        self._buffer = ""
        return leftover


def _on_protocol_error(exc: StreamProtocolError) -> ErrorEvent:
    logger.warning("Stream protocol violation: {}", exc)
    return ErrorEvent(message=f"Malformed stream: {exc}")


def _on_end_of_input(decoder: StreamDecoder) -> None:
    leftover = decoder.close()
    if leftover:
        logger.warning("Stream ended mid-line; discarding {} characters", len(leftover))
    else:
        logger.warning("Stream ended without a finish event")


async def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode a byte stream into events.

    Stops after ``finish``.  A malformed line ends the stream with a single
    ``ErrorEvent``.  End of input without ``finish`` simply ends the
    iteration; a dangling partial line is discarded.
    """
    decoder = StreamDecoder()
    async for chunk in chunks:
        try:
            for event in decoder.feed(chunk):
                yield event
                if isinstance(event, FinishEvent):
                    return
        except StreamProtocolError as exc:
            yield _on_protocol_error(exc)
            return
    _on_end_of_input(decoder)


def iter_decode(chunks: Iterable[bytes]) -> Iterator[StreamEvent]:
    """Synchronous counterpart of ``decode_stream``."""
    decoder = StreamDecoder()
    for chunk in chunks:
        try:
            for event in decoder.feed(chunk):
                yield event
                if isinstance(event, FinishEvent):
                    return
        except StreamProtocolError as exc:
            yield _on_protocol_error(exc)
            return
    _on_end_of_input(decoder)
