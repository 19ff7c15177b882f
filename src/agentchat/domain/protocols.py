"""Domain service interfaces (ports).

These protocols define the contracts that infrastructure implementations
must satisfy.  The application layer depends on these abstractions,
not on concrete classes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentchat.domain.messages import Message
from agentchat.domain.models import Chat, ChatSummary, DocumentVersion, Session, User

if TYPE_CHECKING:
    from pydantic_ai.tools import ToolDefinition
    from starlette.requests import Request

    from agentchat.streaming.events import StreamEvent

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@runtime_checkable
class IChatRepository(Protocol):
    """Interface for chat and message persistence.

    Implementations: ChatRepository (SQLite-backed).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def create_user(self, name: str, email: str | None = None) -> User: ...

    def get_user(self, user_id: str) -> User | None: ...

    def get_user_by_email(self, email: str) -> User | None: ...

    def ensure_user(self, user_id: str, name: str = "User", email: str | None = None) -> User: ...

    def ensure_user_by_email(self, name: str, email: str) -> User: ...

    def seed_users(self, users: list[dict]) -> None: ...

    def get_chat(self, chat_id: str) -> Chat | None: ...

    def create_chat(
        self,
        chat_id: str,
        user_id: str,
        title: str,
        visibility: str = "private",
        agent_id: str | None = None,
    ) -> Chat: ...

    def update_chat_title(self, chat_id: str, title: str, generated: bool = True) -> None: ...

    def delete_chat(self, chat_id: str) -> None: ...

    def list_user_chats(self, user_id: str) -> list[ChatSummary]: ...

    def save_messages(self, chat_id: str, messages: Sequence[Message], model_id: str | None = None) -> None: ...

    def get_messages_by_chat(self, chat_id: str) -> list[Message]: ...


@runtime_checkable
class IDocumentRepository(Protocol):
    """Interface for append-only artifact document versions.

    Implementations: DocumentRepository (SQLite-backed).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def save_document(
        self, document_id: str, title: str, kind: str, content: str, user_id: str
    ) -> DocumentVersion: ...

    def get_document_versions(self, document_id: str) -> list[DocumentVersion]: ...

    def get_latest_document(self, document_id: str) -> DocumentVersion | None: ...


# ---------------------------------------------------------------------------
# Credits and rate limiting
# ---------------------------------------------------------------------------


@runtime_checkable
class ICreditStore(Protocol):
    """Interface for the per-user credit balance.

    Implementations: CreditLedger (SQLite-backed).
    """

    def balance(self, user_id: str) -> Decimal: ...

    def has_credits(self, user_id: str) -> bool: ...

    def grant(self, user_id: str, amount: Decimal, description: str = "") -> Decimal: ...

    def charge(
        self,
        user_id: str,
        amount: Decimal,
        *,
        message_id: str | None = None,
        model_id: str | None = None,
        description: str = "",
    ) -> Decimal: ...


@runtime_checkable
class IRateLimiter(Protocol):
    """Interface for request admission control keyed by an opaque string."""

    def check(self, key: str) -> Any: ...


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@runtime_checkable
class ISessionProvider(Protocol):
    """Resolve the caller of an HTTP request, or None when anonymous."""

    def get_session(self, request: Request) -> Session | None: ...


# ---------------------------------------------------------------------------
# Model backend
# ---------------------------------------------------------------------------


@runtime_checkable
class IModelBackend(Protocol):
    """One generation step of a language model as a stream of events.

    Implementations yield text/reasoning deltas and tool calls, then exactly
    one ``FinishStepEvent`` carrying usage.  They never execute tools.
    """

    def stream(
        self,
        handle: Any,
        messages: Sequence[Message],
        system_prompt: str | None,
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[StreamEvent]: ...
