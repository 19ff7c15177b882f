"""HTTP request/response schemas (Pydantic models) for the REST API.

The chat request is sent by the browser client and therefore uses camelCase
keys; the remaining REST resources keep snake_case.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agentchat.domain.messages import Message

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    name: str = Field(default="", description="User display name (used only with open registration)")
    email: str = Field(description="User email")


class LoginResponse(BaseModel):
    """Response from POST /auth/login."""

    token: str
    user_id: str
    name: str


# ---------------------------------------------------------------------------
# Chat turn
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """Request body for POST /api/chat.

    The caller is taken from the bearer token, never from the body.  The
    client owns the conversation: ``messages`` is the full history ending
    with the new user message.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chat_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("chatId", "id", "chat_id"),
        description="Client-generated chat ID; a new ID starts a new chat",
    )
    messages: list[Message] = Field(min_length=1)
    model: str | None = Field(
        default=None,
        validation_alias=AliasChoices("model", "selectedChatModel"),
        description="Catalog model ID; falls back to the stored preference, then the default",
    )
    system_prompt: str | None = None
    agent_id: str | None = None
    tools: list[str] | None = Field(default=None, description="Tool names to enable; all tools when omitted")
    visibility: str = Field(
        default="private",
        pattern="^(public|private|link)$",
        validation_alias=AliasChoices("visibility", "selectedVisibilityType"),
    )


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------


class ChatSummaryResponse(BaseModel):
    """A single chat in the listing."""

    id: str
    title: str
    visibility: str
    created_at: str
    updated_at: str
    message_count: int


class ChatTitleResponse(BaseModel):
    """Response from GET /api/chat/{chat_id} and POST /api/chats/{chat_id}/title."""

    chat_id: str
    title: str
    title_generated: bool


MessageResponse = Message


class DeleteChatResponse(BaseModel):
    chat_id: str
    deleted: bool = True


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ModelInfo(BaseModel):
    """One entry of GET /api/models."""

    id: str
    name: str
    description: str
    supports_tools: bool
    is_default: bool


class ModelPreferenceRequest(BaseModel):
    model: str = Field(min_length=1)


class ModelPreferenceResponse(BaseModel):
    model: str


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentVersionResponse(BaseModel):
    id: str
    version_index: int
    title: str
    kind: str
    content: str
    created_at: str


class SaveDocumentRequest(BaseModel):
    """Request body for POST /api/document (manual edit)."""

    content: str
    title: str | None = None
    kind: str | None = Field(default=None, description="Required only when creating a new document")


class DiffViewResponse(BaseModel):
    """Both whole contents of two adjacent versions, plus a display diff."""

    document_id: str
    old_version: int
    new_version: int
    old_content: str
    new_content: str
    unified_diff: list[str]
