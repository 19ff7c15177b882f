"""Document routes: artifact versions, manual saves and diff views."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from loguru import logger

from agentchat.domain.models import DocumentVersion, Session
from agentchat.presentation.dependencies import APPLICATION_ERRORS, get_services, require_session, to_http_error
from agentchat.presentation.schemas import DiffViewResponse, DocumentVersionResponse, SaveDocumentRequest
from agentchat.services import Services

router = APIRouter(tags=["documents"])


def _version_response(version: DocumentVersion) -> DocumentVersionResponse:
    return DocumentVersionResponse(
        id=version.document_id,
        version_index=version.version_index,
        title=version.title,
        kind=version.kind,
        content=version.content,
        created_at=version.created_at,
    )


@router.get("/api/document", response_model=list[DocumentVersionResponse])
async def get_document(
    document_id: str = Query(alias="id"),
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """All versions of a document, oldest first."""
    try:
        versions = services.document_service.get_versions(document_id, session.user_id)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    return [_version_response(v) for v in versions]


@router.post("/api/document", response_model=DocumentVersionResponse)
async def save_document(
    body: SaveDocumentRequest,
    document_id: str = Query(alias="id"),
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Append a new version with manually edited content."""
    try:
        version = services.document_service.save_version(
            document_id, body.content, session.user_id, title=body.title, kind=body.kind
        )
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    logger.info("POST /api/document | user={} doc={} version={}", session.user_id, document_id, version.version_index)
    return _version_response(version)


@router.get("/api/document/diff", response_model=DiffViewResponse)
async def diff_document(
    document_id: str = Query(alias="id"),
    index: int = Query(ge=0, description="Version to compare with the one before it"),
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Both whole contents of version ``index - 1`` and ``index``."""
    try:
        view = services.document_service.diff(document_id, index, session.user_id)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    return DiffViewResponse(
        document_id=view.document_id,
        old_version=view.old_version,
        new_version=view.new_version,
        old_content=view.old_content,
        new_content=view.new_content,
        unified_diff=view.unified_diff,
    )
