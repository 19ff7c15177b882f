"""Per-kind document generation.

Each handler streams its content into the turn's data stream while it is
generated and returns the final content for persistence.

Wire semantics of the deltas differ by kind:

- ``text-delta`` carries an increment, appended by the client;
- ``code-delta``, ``sheet-delta`` and ``react-delta`` carry the whole
  content generated so far, replacing what the client holds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel, Field

from agentchat.application.artifacts.generator import ArtifactGenerator
from agentchat.domain.messages import Message
from agentchat.domain.models import DocumentVersion
from agentchat.streaming.writer import DataStreamWriter

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

TEXT_PROMPT = (
    "Write about the given topic. Markdown is supported. "
    "Use headings wherever appropriate."
)

CODE_PROMPT = """\
You are a Python code generator that creates self-contained, executable code snippets.
- Each snippet should be complete and runnable on its own
- Prefer print() statements to display outputs
- Include helpful comments explaining the code
- Keep snippets concise (generally under 15 lines)
- Avoid external dependencies, use the Python standard library
- Handle potential errors gracefully
- Do not use input() or other interactive functions
- Do not access files or network resources
"""

SHEET_PROMPT = (
    "You are a spreadsheet creation assistant. Create a spreadsheet in CSV format "
    "based on the given prompt. The data should contain meaningful column headers and data."
)

REACT_PROMPT = """\
You are a React developer.
Generate a React component with a descriptive PascalCase name.
Do not include imports or exports, only the component definition.
"""


def update_document_prompt(current_content: str, kind: str) -> str:
    """System prompt for rewriting an existing document of *kind*."""
    if kind == "code":
        what = "code snippet"
    elif kind == "sheet":
        what = "spreadsheet"
    elif kind == "react":
        what = "React component"
    else:
        what = "document"
    return (
        f"Improve the following contents of the {what} based on the given prompt. "
        f"Return the complete updated {what}, not only the changes.\n\n{current_content}"
    )


def conversation_prompt(title: str, messages: Sequence[Message], limit: int = 6) -> str:
    """Title plus the tail of the conversation, for kinds that need context."""
    lines = [f"{m.role}: {m.text}" for m in messages[-limit:] if m.text]
    if not lines:
        return title
    return f"{title}\n\nConversation so far:\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Schemas for object-streamed kinds (defaults allow partial snapshots)
# ---------------------------------------------------------------------------


class CodeDraft(BaseModel):
    code: str = Field(default="", description="The complete code")


class SheetDraft(BaseModel):
    csv: str = Field(default="", description="CSV data")


class ReactDraft(BaseModel):
    component_name: str = Field(default="", description="PascalCase component name")
    code: str = Field(default="", description="The component definition")


class ReactUpdate(BaseModel):
    code: str = ""


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class DocumentHandler(ABC):
    kind: str

    def __init__(self, generator: ArtifactGenerator) -> None:
        self.generator = generator

    @abstractmethod
    async def create(self, title: str, writer: DataStreamWriter, messages: Sequence[Message]) -> str: ...

    @abstractmethod
    async def update(self, document: DocumentVersion, description: str, writer: DataStreamWriter) -> str: ...


class TextDocumentHandler(DocumentHandler):
    kind = "text"

    async def create(self, title: str, writer: DataStreamWriter, messages: Sequence[Message]) -> str:
        return await self._stream(TEXT_PROMPT, title, writer)

    async def update(self, document: DocumentVersion, description: str, writer: DataStreamWriter) -> str:
        return await self._stream(update_document_prompt(document.content, "text"), description, writer)

    async def _stream(self, system: str, prompt: str, writer: DataStreamWriter) -> str:
        content = ""
        async for delta in self.generator.stream_text(system, prompt):
            if delta:
                writer.write("text-delta", delta)
                content += delta
        return content


class _SnapshotHandler(DocumentHandler):
    """Shared loop for kinds streamed as cumulative snapshots of one field."""

    system_prompt: str
    delta_type: str
    field: str
    draft: type[BaseModel]

    async def create(self, title: str, writer: DataStreamWriter, messages: Sequence[Message]) -> str:
        return await self._stream(self.system_prompt, title, writer, self.draft)

    async def update(self, document: DocumentVersion, description: str, writer: DataStreamWriter) -> str:
        system = update_document_prompt(document.content, self.kind)
        return await self._stream(system, description, writer, self.draft)

    async def _stream(self, system: str, prompt: str, writer: DataStreamWriter, schema: type[BaseModel]) -> str:
        content = ""
        async for snapshot in self.generator.stream_object(system, prompt, schema):
            value = snapshot.get(self.field) or ""
            if value and value != content:
                writer.write(self.delta_type, value)
                content = value
        return content


class CodeDocumentHandler(_SnapshotHandler):
    kind = "code"
    system_prompt = CODE_PROMPT
    delta_type = "code-delta"
    field = "code"
    draft = CodeDraft


class SheetDocumentHandler(_SnapshotHandler):
    kind = "sheet"
    system_prompt = SHEET_PROMPT
    delta_type = "sheet-delta"
    field = "csv"
    draft = SheetDraft

    async def create(self, title: str, writer: DataStreamWriter, messages: Sequence[Message]) -> str:
        content = await super().create(title, writer, messages)
        # The final snapshot is re-sent so the client ends on complete CSV rows.
        writer.write(self.delta_type, content)
        return content


class ReactDocumentHandler(_SnapshotHandler):
    kind = "react"
    system_prompt = REACT_PROMPT
    delta_type = "react-delta"
    field = "code"
    draft = ReactUpdate

    async def create(self, title: str, writer: DataStreamWriter, messages: Sequence[Message]) -> str:
        content = ""
        component_name = ""
        prompt = conversation_prompt(title, messages)
        async for snapshot in self.generator.stream_object(self.system_prompt, prompt, ReactDraft):
            name = snapshot.get("component_name") or ""
            if name and name != component_name:
                writer.write("metadata-update", {"componentName": name})
                component_name = name
            code = snapshot.get("code") or ""
            if code and code != content:
                writer.write(self.delta_type, code)
                content = code
        return content


def default_handlers(generator: ArtifactGenerator) -> dict[str, DocumentHandler]:
    handlers: list[DocumentHandler] = [
        TextDocumentHandler(generator),
        CodeDocumentHandler(generator),
        SheetDocumentHandler(generator),
        ReactDocumentHandler(generator),
    ]
    return {h.kind: h for h in handlers}
