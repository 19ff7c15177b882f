"""Artifact documents: streamed generation, client assembly, versions."""

from agentchat.application.artifacts.assembler import ArtifactState, DocumentAssembler
from agentchat.application.artifacts.documents import DocumentService
from agentchat.application.artifacts.generator import ArtifactGenerator, PydanticAIArtifactGenerator
from agentchat.application.artifacts.handlers import DocumentHandler, default_handlers
from agentchat.application.artifacts.versions import DiffView, VersionCursor, build_diff_view

__all__ = [
    "ArtifactGenerator",
    "ArtifactState",
    "DiffView",
    "DocumentAssembler",
    "DocumentHandler",
    "DocumentService",
    "PydanticAIArtifactGenerator",
    "VersionCursor",
    "build_diff_view",
    "default_handlers",
]
