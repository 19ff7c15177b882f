"""Artifact document lifecycle: create, update, manual save, versions, diff."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING

from loguru import logger

from agentchat.application.artifacts.handlers import DocumentHandler
from agentchat.application.artifacts.versions import DiffView, build_diff_view
from agentchat.application.exceptions import (
    ChatAccessDeniedError,
    DocumentNotFoundError,
    UnsupportedDocumentKindError,
)
from agentchat.domain.models import DocumentVersion
from agentchat.domain.protocols import IDocumentRepository

if TYPE_CHECKING:
    from agentchat.tools.base import ToolContext


class DocumentService:
    """Runs document handlers and persists every result as a new version.

    During generation the data stream carries, in order: ``kind``, ``id``,
    ``title``, ``clear``, the handler's deltas, then ``finish`` once the
    version is saved. Updates repeat the header so a client that did not
    see the creation still knows which document is being replaced.
    """

    def __init__(self, repository: IDocumentRepository, handlers: Mapping[str, DocumentHandler]) -> None:
        self.repository = repository
        self.handlers = dict(handlers)

    def _handler(self, kind: str) -> DocumentHandler:
        handler = self.handlers.get(kind)
        if handler is None:
            raise UnsupportedDocumentKindError(f"No document handler for kind: {kind}")
        return handler

    def _latest_owned(self, document_id: str, user_id: str) -> DocumentVersion:
        latest = self.repository.get_latest_document(document_id)
        if latest is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if latest.user_id != user_id:
            raise ChatAccessDeniedError(f"Document {document_id} belongs to another user")
        return latest

    async def create_document(self, title: str, kind: str, ctx: ToolContext) -> dict:
        handler = self._handler(kind)
        document_id = str(uuid.uuid4())
        writer = ctx.writer

        writer.write("kind", kind)
        writer.write("id", document_id)
        writer.write("title", title)
        writer.write("clear", "")

        content = await handler.create(title, writer, ctx.messages)
        self.repository.save_document(document_id, title, kind, content, ctx.user_id)
        writer.write("finish", "")

        logger.info("Created {} document {} | title={}", kind, document_id, title)
        return {
            "id": document_id,
            "title": title,
            "kind": kind,
            "content": "A document was created and is now visible to the user.",
        }

    async def update_document(self, document_id: str, description: str, ctx: ToolContext) -> dict:
        latest = self._latest_owned(document_id, ctx.user_id)
        handler = self._handler(latest.kind)
        writer = ctx.writer

        writer.write("kind", latest.kind)
        writer.write("id", document_id)
        writer.write("title", latest.title)
        writer.write("clear", latest.title)
        content = await handler.update(latest, description, writer)
        version = self.repository.save_document(document_id, latest.title, latest.kind, content, ctx.user_id)
        writer.write("finish", "")

        logger.info("Updated document {} to version {}", document_id, version.version_index)
        return {
            "id": document_id,
            "title": latest.title,
            "kind": latest.kind,
            "content": "The document has been updated successfully.",
        }

    def save_version(
        self,
        document_id: str,
        content: str,
        user_id: str,
        title: str | None = None,
        kind: str | None = None,
    ) -> DocumentVersion:
        """Append a manually edited version.

        A document that does not exist yet is created when *title* and
        *kind* are both given.
        """
        if self.repository.get_latest_document(document_id) is None and title and kind:
            self._handler(kind)
            logger.info("Creating document {} ({}) from a manual save", document_id, kind)
            return self.repository.save_document(document_id, title, kind, content, user_id)
        latest = self._latest_owned(document_id, user_id)
        return self.repository.save_document(
            document_id, title or latest.title, latest.kind, content, user_id
        )

    def get_versions(self, document_id: str, user_id: str) -> list[DocumentVersion]:
        versions = self.repository.get_document_versions(document_id)
        if not versions:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if versions[-1].user_id != user_id:
            raise ChatAccessDeniedError(f"Document {document_id} belongs to another user")
        return versions

    def diff(self, document_id: str, version_index: int, user_id: str) -> DiffView:
        return build_diff_view(self.get_versions(document_id, user_id), version_index)
