"""Tools that let the model create and revise artifact documents."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from agentchat.tools.base import ToolContext, tool

DOCUMENT_TOOL_TIMEOUT = 180.0


class CreateDocumentArgs(BaseModel):
    title: str = Field(min_length=1, description="Title of the document")
    kind: Literal["text", "code", "react", "sheet"] = Field(description="Kind of document to create")


class UpdateDocumentArgs(BaseModel):
    id: str = Field(description="The ID of the document to update")
    description: str = Field(min_length=1, description="The changes to make")


@tool("create_document", CreateDocumentArgs, timeout=DOCUMENT_TOOL_TIMEOUT)
async def create_document(args: CreateDocumentArgs, ctx: ToolContext) -> dict:
    """Create a document for writing or content creation.

    The document is generated from the title (and, for React components,
    the conversation) and shown to the user as it is written.
    """
    if ctx.documents is None:
        raise RuntimeError("Documents are not available in this chat")
    return await ctx.documents.create_document(args.title, args.kind, ctx)


@tool("update_document", UpdateDocumentArgs, timeout=DOCUMENT_TOOL_TIMEOUT)
async def update_document(args: UpdateDocumentArgs, ctx: ToolContext) -> dict:
    """Update an existing document with the given description of changes."""
    if ctx.documents is None:
        raise RuntimeError("Documents are not available in this chat")
    return await ctx.documents.update_document(args.id, args.description, ctx)
