from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Date, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boletas.core.models import Base, Timestamped, UUIDPrimaryKey


class Receipt(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "receipts_receipt"

    receipt_id: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies_company.id"), nullable=True, index=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("categories_category.id"), nullable=True, index=True
    )

    date: Mapped[dt.date] = mapped_column(Date, index=True)
    # Whole pesos; CLP has no fractional unit on receipts.
    total: Mapped[int] = mapped_column(Integer)
    tax_amount: Mapped[int] = mapped_column(Integer, default=0)

    vendor: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_text_excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)

    image_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    image_content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    user = relationship("User")
    company = relationship("Company")
    category = relationship("Category")

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category else None

    @property
    def company_name(self) -> str | None:
        return self.company.name if self.company else None

    @property
    def has_image(self) -> bool:
        return bool(self.image_key)
