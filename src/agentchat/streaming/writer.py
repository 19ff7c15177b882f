"""Side channel that lets tools push data events into the running turn."""

from __future__ import annotations

import asyncio
from typing import Any

from agentchat.streaming.events import DataEvent, StreamEvent


class DataStreamWriter:
    """Non-blocking writer onto the turn's merged event queue.

    Tools call ``write`` while they run; the orchestrator forwards the
    queued events to the client in the order they were written.
    """

    def __init__(self, queue: asyncio.Queue[StreamEvent] | None = None) -> None:
        self.queue: asyncio.Queue[StreamEvent] = queue if queue is not None else asyncio.Queue()

    def write(self, data_type: str, content: Any = None) -> None:
        self.queue.put_nowait(DataEvent(data_type=data_type, content=content))

    def write_event(self, event: StreamEvent) -> None:
        self.queue.put_nowait(event)

    def drain(self) -> list[StreamEvent]:
        """Remove and return everything queued so far."""
        events: list[StreamEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
