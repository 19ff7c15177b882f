"""Client-side fold of artifact data events into the document being viewed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from agentchat.streaming.events import DataEvent

# Deltas carrying the whole content generated so far.
SNAPSHOT_DELTAS = frozenset({"code-delta", "sheet-delta", "react-delta"})


@dataclass
class ArtifactState:
    document_id: str | None = None
    kind: str | None = None
    title: str = ""
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    status: Literal["idle", "streaming"] = "idle"


class DocumentAssembler:
    """Tracks the artifact currently streaming plus those finished earlier in the turn."""

    def __init__(self) -> None:
        self.current = ArtifactState()
        self.completed: list[ArtifactState] = []
        self.ignored: list[str] = []

    def apply(self, event: DataEvent) -> bool:
        """Fold *event* into the current artifact; False if its type is not an artifact event."""
        state = self.current
        content = event.content

        match event.data_type:
            case "kind":
                if state.document_id is not None and state.status == "idle":
                    self.completed.append(state)
                    state = self.current = ArtifactState()
                state.kind = str(content)
                state.status = "streaming"
            case "id":
                state.document_id = str(content)
                # An update replaces the earlier copy of the same document.
                self.completed = [d for d in self.completed if d.document_id != state.document_id]
            case "title":
                state.title = str(content)
            case "clear":
                state.content = ""
                state.status = "streaming"
            case "text-delta":
                state.content += str(content)
                state.status = "streaming"
            case delta if delta in SNAPSHOT_DELTAS:
                state.content = str(content)
                state.status = "streaming"
            case "metadata-update":
                if isinstance(content, dict):
                    state.metadata.update(content)
                else:
                    state.metadata["componentName"] = content
            case "finish":
                state.status = "idle"
            case other:
                self.ignored.append(other)
                logger.debug("Ignoring non-artifact data event {!r}", other)
                return False
        return True

    @property
    def documents(self) -> list[ArtifactState]:
        """Every artifact seen, finished ones first."""
        state = self.current
        if state.document_id is None and state.kind is None and not state.content and state.status == "idle":
            return list(self.completed)
        return [*self.completed, self.current]
