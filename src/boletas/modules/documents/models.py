from __future__ import annotations

import uuid

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boletas.core.models import Activatable, Base, Timestamped, UUIDPrimaryKey

document_targets = Table(
    "documents_document_target",
    Base.metadata,
    Column("document_id", Uuid(as_uuid=True), ForeignKey("documents_document.id"), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("identity_user.id"), primary_key=True),
)


class DocumentCategory(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "documents_category"

    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Document(UUIDPrimaryKey, Timestamped, Activatable, Base):
    """A file an administrator shares with every user, or only with its targets."""

    __tablename__ = "documents_document"

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    filename: Mapped[str] = mapped_column(String(500))
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    storage_key: Mapped[str] = mapped_column(String(500))
    byte_size: Mapped[int] = mapped_column(Integer, default=0)

    uploaded_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents_category.id"), nullable=True, index=True
    )

    category = relationship("DocumentCategory")
    targets = relationship("User", secondary=document_targets)

    @property
    def target_user_ids(self) -> list[uuid.UUID]:
        return [u.id for u in self.targets]
