"""Domain entities and value objects.

These are the core data structures of the chat domain, independent of any
infrastructure or framework concerns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Visibility = Literal["public", "private", "link"]
DocumentKind = Literal["text", "code", "react", "sheet"]

DOCUMENT_KINDS: tuple[str, ...] = ("text", "code", "react", "sheet")

# ---------------------------------------------------------------------------
# Users and sessions
# ---------------------------------------------------------------------------


@dataclass
class User:
    id: str
    name: str
    email: str | None
    created_at: str


@dataclass(frozen=True)
class Session:
    """The authenticated caller of a request."""

    user_id: str
    name: str
    email: str


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------


@dataclass
class Chat:
    id: str
    user_id: str
    title: str
    title_generated: bool
    visibility: str
    created_at: str
    updated_at: str
    agent_id: str | None = None


@dataclass
class ChatSummary:
    id: str
    title: str
    visibility: str
    created_at: str
    updated_at: str
    message_count: int


# ---------------------------------------------------------------------------
# Artifact documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentVersion:
    """One immutable saved version of an artifact document.

    ``version_index`` starts at 0 and grows by one on every save.
    """

    document_id: str
    version_index: int
    title: str
    kind: str
    content: str
    user_id: str
    created_at: str
