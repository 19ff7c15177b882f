"""Chat persistence: users, chats and messages in SQLite.

Message parts are stored as JSON in the same camelCase shape the client
sends, so a reloaded conversation renders exactly like the live one.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from agentchat.domain.messages import Message, Part
from agentchat.domain.models import Chat, ChatSummary, User

_PARTS = TypeAdapter(list[Part])

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    agent_id TEXT,
    title TEXT NOT NULL,
    title_generated BOOLEAN DEFAULT 0,
    visibility TEXT NOT NULL DEFAULT 'private' CHECK(visibility IN ('public', 'private', 'link')),
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system', 'tool')),
    parts TEXT NOT NULL DEFAULT '[]',
    content TEXT NOT NULL DEFAULT '',
    attachments TEXT NOT NULL DEFAULT '[]',
    model_id TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages(chat_id);
CREATE INDEX IF NOT EXISTS idx_chats_user_id ON chats(user_id);
"""


def _utcnow() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f")


class ChatRepository:
    """CRUD operations for chats stored in a SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(_SCHEMA_SQL)
        self._migrate()
        self.conn.commit()
        logger.info("Chat DB ready at {}", self.db_path)

    def _migrate(self) -> None:
        """Apply incremental schema migrations for existing databases."""
        assert self.conn
        columns = {row["name"] for row in self.conn.execute("PRAGMA table_info(chats)").fetchall()}
        if "agent_id" not in columns:
            self.conn.execute("ALTER TABLE chats ADD COLUMN agent_id TEXT")
            logger.info("Migrated chats table: added agent_id column")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, name: str, email: str | None = None) -> User:
        """Create a new user and return it."""
        assert self.conn
        user_id = str(uuid.uuid4())
        now = _utcnow()
        self.conn.execute(
            "INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user_id, name, email, now),
        )
        self.conn.commit()
        return User(id=user_id, name=name, email=email, created_at=now)

    def get_user(self, user_id: str) -> User | None:
        assert self.conn
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        assert self.conn
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._row_to_user(row) if row else None

    def ensure_user(self, user_id: str, name: str = "User", email: str | None = None) -> User:
        """Return the user with this ID, creating a placeholder if needed."""
        assert self.conn
        self.conn.execute(
            "INSERT OR IGNORE INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user_id, name, email, _utcnow()),
        )
        self.conn.commit()
        user = self.get_user(user_id)
        assert user
        return user

    def ensure_user_by_email(self, name: str, email: str) -> User:
        """Return existing user by email, or create one with a new UUID."""
        user = self.get_user_by_email(email)
        if user:
            return user
        user = self.create_user(name, email)
        logger.info("Created user {} ({})", name, email)
        return user

    def seed_users(self, users: list[dict]) -> None:
        """Insert pre-registered users that do not exist yet."""
        for entry in users:
            if not self.get_user_by_email(entry["email"]):
                self.create_user(entry["name"], entry["email"])

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def get_chat(self, chat_id: str) -> Chat | None:
        """Return a chat by ID, or None if not found."""
        assert self.conn
        row = self.conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
        return self._row_to_chat(row) if row else None

    def create_chat(
        self,
        chat_id: str,
        user_id: str,
        title: str,
        visibility: str = "private",
        agent_id: str | None = None,
    ) -> Chat:
        """Create a chat with a placeholder title.

        Idempotent: an existing chat with the same ID is returned unchanged.
        """
        assert self.conn
        self.ensure_user(user_id)
        now = _utcnow()
        cursor = self.conn.execute(
            "INSERT OR IGNORE INTO chats "
            "(id, user_id, agent_id, title, title_generated, visibility, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 0, ?, ?, ?)",
            (chat_id, user_id, agent_id, title, visibility, now, now),
        )
        self.conn.commit()
        if cursor.rowcount:
            logger.info("Created chat {} for user {}", chat_id, user_id)
        chat = self.get_chat(chat_id)
        assert chat
        return chat

    def update_chat_title(self, chat_id: str, title: str, generated: bool = True) -> None:
        """Persist a generated (or manual) title for a chat."""
        assert self.conn
        self.conn.execute(
            "UPDATE chats SET title = ?, title_generated = ?, updated_at = ? WHERE id = ?",
            (title, 1 if generated else 0, _utcnow(), chat_id),
        )
        self.conn.commit()

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and all of its messages."""
        assert self.conn
        self.conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        self.conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
        self.conn.commit()
        logger.info("Deleted chat {}", chat_id)

    def list_user_chats(self, user_id: str) -> list[ChatSummary]:
        """Return all chats for a user, newest first, with message counts."""
        assert self.conn
        rows = self.conn.execute(
            """
            SELECT c.id, c.title, c.visibility, c.created_at, c.updated_at,
                   COUNT(m.id) AS message_count
            FROM chats c
            LEFT JOIN messages m ON m.chat_id = c.id
            WHERE c.user_id = ?
            GROUP BY c.id
            ORDER BY c.updated_at DESC
            """,
            (user_id,),
        ).fetchall()
        return [
            ChatSummary(
                id=row["id"],
                title=row["title"],
                visibility=row["visibility"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    def _touch_chat(self, chat_id: str) -> None:
        assert self.conn
        self.conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (_utcnow(), chat_id))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def save_messages(self, chat_id: str, messages: Sequence[Message], model_id: str | None = None) -> None:
        """Persist messages in order.

        A message whose ID is already stored is updated in place, so re-sending a
        turn never duplicates it.
        """
        assert self.conn
        with self.conn:
            for message in messages:
                self.conn.execute(
                    "INSERT INTO messages "
                    "(id, chat_id, role, parts, content, attachments, model_id, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET parts = excluded.parts, content = excluded.content, "
                    "attachments = excluded.attachments",
                    (
                        message.id,
                        chat_id,
                        message.role,
                        _PARTS.dump_json(message.parts, by_alias=True).decode(),
                        message.text,
                        json.dumps(message.attachments),
                        model_id if message.role == "assistant" else None,
                        _utcnow(),
                    ),
                )
            self._touch_chat(chat_id)

    def get_messages_by_chat(self, chat_id: str) -> list[Message]:
        """Return all messages in a chat, ordered chronologically."""
        assert self.conn
        rows = self.conn.execute(
            "SELECT * FROM messages WHERE chat_id = ? ORDER BY created_at ASC, rowid ASC",
            (chat_id,),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(id=row["id"], name=row["name"], email=row["email"], created_at=row["created_at"])

    @staticmethod
    def _row_to_chat(row: sqlite3.Row) -> Chat:
        return Chat(
            id=row["id"],
            user_id=row["user_id"],
            agent_id=row["agent_id"],
            title=row["title"],
            title_generated=bool(row["title_generated"]),
            visibility=row["visibility"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        try:
            parts = _PARTS.validate_json(row["parts"] or "[]")
        except ValidationError:
            logger.warning("Message {} has unreadable parts; falling back to content", row["id"])
            parts = []
        try:
            attachments = json.loads(row["attachments"] or "[]")
        except (json.JSONDecodeError, TypeError):
            attachments = []
        return Message(
            id=row["id"],
            role=row["role"],
            parts=parts,
            content=row["content"],
            attachments=attachments,
            created_at=datetime.fromisoformat(row["created_at"]).replace(tzinfo=UTC),
        )
