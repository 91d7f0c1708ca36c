from __future__ import annotations

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from boletas.core.models import Base, Timestamped, UUIDPrimaryKey


class ExtractionCache(UUIDPrimaryKey, Timestamped, Base):
    """OCR provider responses keyed by file content, so re-uploads skip the paid call."""

    __tablename__ = "extraction_cache"
    __table_args__ = (UniqueConstraint("content_hash", "provider"),)

    content_hash: Mapped[str] = mapped_column(String(64), index=True)
    provider: Mapped[str] = mapped_column(String(50))
    model: Mapped[str] = mapped_column(String(100), default="")
    response_json: Mapped[dict] = mapped_column(JSON, default=dict)
