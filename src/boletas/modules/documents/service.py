from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from boletas.core.config import settings
from boletas.core.logging import get_logger, log_event
from boletas.core.storage import DOCUMENTS_PREFIX, StorageError, get_storage, sanitize_filename
from boletas.modules.documents.models import Document, DocumentCategory
from boletas.modules.identity.models import User, UserRole

logger = get_logger(__name__)


def list_document_categories(session: Session) -> list[DocumentCategory]:
    return list(session.scalars(select(DocumentCategory).order_by(DocumentCategory.name)))


def get_document_category(session: Session, *, category_id: uuid.UUID) -> DocumentCategory:
    category = session.scalar(select(DocumentCategory).where(DocumentCategory.id == category_id))
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Document category not found"
        )
    return category


def _ensure_unique_category_name(
    session: Session, *, name: str, exclude_id: uuid.UUID | None = None
) -> None:
    stmt = select(DocumentCategory).where(func.lower(DocumentCategory.name) == name.lower())
    existing = session.scalar(stmt)
    if existing and existing.id != exclude_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Document category already exists"
        )


def create_document_category(
    session: Session, *, name: str, description: str | None
) -> DocumentCategory:
    name = name.strip()
    _ensure_unique_category_name(session, name=name)
    category = DocumentCategory(name=name, description=description)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def update_document_category(
    session: Session, *, category: DocumentCategory, name: str, description: str | None
) -> DocumentCategory:
    name = name.strip()
    _ensure_unique_category_name(session, name=name, exclude_id=category.id)
    category.name = name
    category.description = description
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def delete_document_category(session: Session, *, category: DocumentCategory) -> None:
    session.execute(
        update(Document).where(Document.category_id == category.id).values(category_id=None)
    )
    session.delete(category)
    session.commit()


def _load_targets(session: Session, *, user_ids: list[uuid.UUID]) -> list[User]:
    if not user_ids:
        return []
    wanted = set(user_ids)
    users = list(session.scalars(select(User).where(User.id.in_(wanted))))
    if len(users) != len(wanted):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown target user")
    return users


def create_document(
    session: Session,
    *,
    uploader: User,
    name: str,
    description: str | None,
    category_id: uuid.UUID | None,
    target_user_ids: list[uuid.UUID],
    filename: str,
    content_type: str | None,
    body: bytes,
) -> Document:
    if not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(body) > settings.max_document_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large"
        )
    if category_id:
        get_document_category(session, category_id=category_id)
    targets = _load_targets(session, user_ids=target_user_ids)

    filename = sanitize_filename(filename)
    stored = get_storage().put(key=f"{DOCUMENTS_PREFIX}{uuid.uuid4()}-{filename}", body=body)
    document = Document(
        name=name.strip(),
        description=description,
        filename=filename,
        content_type=content_type,
        storage_key=stored.key,
        byte_size=stored.byte_size,
        uploaded_by_id=uploader.id,
        category_id=category_id,
        is_active=True,
        targets=targets,
    )
    session.add(document)
    session.commit()
    session.refresh(document)
    log_event(
        logger,
        "document.created",
        document_id=str(document.id),
        byte_size=stored.byte_size,
        target_count=len(targets),
    )
    return document


def list_documents_for_user(session: Session, *, user: User) -> list[Document]:
    stmt = select(Document).order_by(Document.created_at.desc())
    if user.role != UserRole.ADMIN:
        stmt = stmt.where(
            Document.is_active.is_(True),
            or_(~Document.targets.any(), Document.targets.any(User.id == user.id)),
        )
    return list(session.scalars(stmt))


def get_document_for_user(session: Session, *, document_id: uuid.UUID, user: User) -> Document:
    document = session.scalar(select(Document).where(Document.id == document_id))
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    if user.role == UserRole.ADMIN:
        return document
    visible = document.is_active and (
        not document.targets or any(t.id == user.id for t in document.targets)
    )
    if not visible:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


def read_document(*, document: Document) -> bytes:
    try:
        return get_storage().get(key=document.storage_key)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Document file not found"
        ) from e


def update_document(session: Session, *, document: Document, changes: dict) -> Document:
    if changes.get("name"):
        document.name = str(changes["name"]).strip()
    if "description" in changes:
        document.description = changes["description"]
    if "category_id" in changes:
        category_id = changes["category_id"]
        if category_id:
            get_document_category(session, category_id=category_id)
        document.category_id = category_id
    if changes.get("is_active") is not None:
        document.is_active = bool(changes["is_active"])
    if changes.get("target_user_ids") is not None:
        document.targets = _load_targets(session, user_ids=list(changes["target_user_ids"]))
    session.add(document)
    session.commit()
    session.refresh(document)
    return document


def delete_document(session: Session, *, document: Document) -> None:
    key = document.storage_key
    document.targets = []
    session.delete(document)
    session.commit()
    try:
        get_storage().delete(key=key)
    except StorageError:
        log_event(logger, "document.file.delete_failed", storage_key=key)
    log_event(logger, "document.deleted", storage_key=key)
