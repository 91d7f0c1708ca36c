from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from boletas.core.models import Activatable, Base, Timestamped, UUIDPrimaryKey


class Category(UUIDPrimaryKey, Timestamped, Activatable, Base):
    __tablename__ = "categories_category"

    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
