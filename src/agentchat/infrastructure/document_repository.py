"""Append-only storage for artifact document versions."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from agentchat.domain.models import DocumentVersion

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS document_versions (
    document_id TEXT NOT NULL,
    version_index INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    kind TEXT NOT NULL CHECK(kind IN ('text', 'code', 'react', 'sheet')),
    content TEXT NOT NULL DEFAULT '',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (document_id, version_index)
);
"""


def _utcnow() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f")


class DocumentRepository:
    """Every save appends a new version; nothing is updated in place."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()
        logger.info("Document DB ready at {}", self.db_path)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def save_document(
        self, document_id: str, title: str, kind: str, content: str, user_id: str
    ) -> DocumentVersion:
        """Append the next version of *document_id* and return it."""
        assert self.conn
        now = _utcnow()
        with self.conn:
            row = self.conn.execute(
                "SELECT COALESCE(MAX(version_index), -1) + 1 AS next_index "
                "FROM document_versions WHERE document_id = ?",
                (document_id,),
            ).fetchone()
            version_index = row["next_index"]
            self.conn.execute(
                "INSERT INTO document_versions "
                "(document_id, version_index, user_id, title, kind, content, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (document_id, version_index, user_id, title, kind, content, now),
            )
        logger.info("Saved document {} version {}", document_id, version_index)
        return DocumentVersion(
            document_id=document_id,
            version_index=version_index,
            title=title,
            kind=kind,
            content=content,
            user_id=user_id,
            created_at=now,
        )

    def get_document_versions(self, document_id: str) -> list[DocumentVersion]:
        """All versions of a document, oldest first."""
        assert self.conn
        rows = self.conn.execute(
            "SELECT * FROM document_versions WHERE document_id = ? ORDER BY version_index ASC",
            (document_id,),
        ).fetchall()
        return [self._row_to_version(row) for row in rows]

    def get_latest_document(self, document_id: str) -> DocumentVersion | None:
        assert self.conn
        row = self.conn.execute(
            "SELECT * FROM document_versions WHERE document_id = ? ORDER BY version_index DESC LIMIT 1",
            (document_id,),
        ).fetchone()
        return self._row_to_version(row) if row else None

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> DocumentVersion:
        return DocumentVersion(
            document_id=row["document_id"],
            version_index=row["version_index"],
            title=row["title"],
            kind=row["kind"],
            content=row["content"],
            user_id=row["user_id"],
            created_at=row["created_at"],
        )
