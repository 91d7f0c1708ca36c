from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from boletas.core.models import Base, Timestamped, UUIDPrimaryKey


class Company(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "companies_company"

    name: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    rut: Mapped[str | None] = mapped_column(String(12), nullable=True, index=True)
