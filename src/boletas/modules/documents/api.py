from __future__ import annotations

import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, require_role
from boletas.core.db import db_session
from boletas.core.logging import get_logger, log_event
from boletas.modules.documents.schemas import (
    DocumentCategoryIn,
    DocumentCategoryOut,
    DocumentOut,
    DocumentUpdate,
)
from boletas.modules.documents.service import (
    create_document,
    create_document_category,
    delete_document,
    delete_document_category,
    get_document_category,
    get_document_for_user,
    list_document_categories,
    list_documents_for_user,
    read_document,
    update_document,
    update_document_category,
)
from boletas.modules.identity.models import User, UserRole

router = APIRouter(tags=["documents"])
logger = get_logger(__name__)


@router.get("/document-categories", response_model=list[DocumentCategoryOut])
def list_document_categories_endpoint(
    session: Session = Depends(db_session),
    _: User = Depends(get_current_user),
) -> list[DocumentCategoryOut]:
    return [
        DocumentCategoryOut.model_validate(c, from_attributes=True)
        for c in list_document_categories(session)
    ]


@router.post("/document-categories", response_model=DocumentCategoryOut)
def create_document_category_endpoint(
    payload: DocumentCategoryIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> DocumentCategoryOut:
    category = create_document_category(
        session, name=payload.name, description=payload.description
    )
    return DocumentCategoryOut.model_validate(category, from_attributes=True)


@router.put("/document-categories/{category_id}", response_model=DocumentCategoryOut)
def update_document_category_endpoint(
    category_id: uuid.UUID,
    payload: DocumentCategoryIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> DocumentCategoryOut:
    category = update_document_category(
        session,
        category=get_document_category(session, category_id=category_id),
        name=payload.name,
        description=payload.description,
    )
    return DocumentCategoryOut.model_validate(category, from_attributes=True)


@router.delete("/document-categories/{category_id}")
def delete_document_category_endpoint(
    category_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_document_category(
        session, category=get_document_category(session, category_id=category_id)
    )
    return Response(status_code=204)


@router.post("/documents", response_model=DocumentOut)
async def upload_document_endpoint(
    file: UploadFile = File(...),
    name: str = Form(...),
    description: str | None = Form(default=None),
    category_id: uuid.UUID | None = Form(default=None),
    target_user_ids: list[uuid.UUID] = Form(default=[]),
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.ADMIN)),
) -> DocumentOut:
    body = await file.read()
    log_event(
        logger,
        "upload.received",
        upload_filename=file.filename or "upload.bin",
        content_type=file.content_type,
        byte_size=len(body),
    )
    document = create_document(
        session,
        uploader=user,
        name=name,
        description=description,
        category_id=category_id,
        target_user_ids=target_user_ids,
        filename=file.filename or "upload.bin",
        content_type=file.content_type,
        body=body,
    )
    return DocumentOut.model_validate(document, from_attributes=True)


@router.get("/documents", response_model=list[DocumentOut])
def list_documents_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[DocumentOut]:
    return [
        DocumentOut.model_validate(d, from_attributes=True)
        for d in list_documents_for_user(session, user=user)
    ]


@router.get("/documents/{document_id}/download")
def download_document_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    document = get_document_for_user(session, document_id=document_id, user=user)
    body = read_document(document=document)
    return Response(
        content=body,
        media_type=document.content_type or "application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.filename)}"
        },
    )


@router.patch("/documents/{document_id}", response_model=DocumentOut)
def update_document_endpoint(
    document_id: uuid.UUID,
    payload: DocumentUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.ADMIN)),
) -> DocumentOut:
    document = get_document_for_user(session, document_id=document_id, user=user)
    document = update_document(
        session, document=document, changes=payload.model_dump(exclude_unset=True)
    )
    return DocumentOut.model_validate(document, from_attributes=True)


@router.delete("/documents/{document_id}")
def delete_document_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_document(session, document=get_document_for_user(session, document_id=document_id, user=user))
    return Response(status_code=204)
