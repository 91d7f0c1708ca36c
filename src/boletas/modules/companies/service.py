from __future__ import annotations

import re
import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from boletas.modules.companies.models import Company
from boletas.modules.receipts.models import Receipt

_RUT_RE = re.compile(r"^([0-9]{7,8})-?([0-9K])$")


def normalize_rut(raw: str | None) -> str | None:
    """'12.345.678-k' -> '12345678-K'. Raises 400 for anything not RUT-shaped."""
    if raw is None or not raw.strip():
        return None
    compact = re.sub(r"[.\s]", "", raw).upper()
    m = _RUT_RE.match(compact)
    if not m:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid RUT")
    return f"{m.group(1)}-{m.group(2)}"


def list_companies(session: Session) -> list[Company]:
    return list(session.scalars(select(Company).order_by(Company.name)))


def get_company(session: Session, *, company_id: uuid.UUID) -> Company:
    company = session.scalar(select(Company).where(Company.id == company_id))
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company


def _assert_name_free(session: Session, *, name: str, exclude_id: uuid.UUID | None = None) -> None:
    stmt = select(Company.id).where(func.lower(Company.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Company.id != exclude_id)
    if session.scalar(stmt):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Company already exists")


def create_company(session: Session, *, name: str, rut: str | None) -> Company:
    name = name.strip()
    _assert_name_free(session, name=name)
    company = Company(name=name, rut=normalize_rut(rut))
    session.add(company)
    session.commit()
    session.refresh(company)
    return company


def update_company(session: Session, *, company: Company, name: str, rut: str | None) -> Company:
    name = name.strip()
    _assert_name_free(session, name=name, exclude_id=company.id)
    company.name = name
    company.rut = normalize_rut(rut)
    session.add(company)
    session.commit()
    session.refresh(company)
    return company


def delete_company(session: Session, *, company: Company) -> None:
    in_use = session.scalar(select(func.count(Receipt.id)).where(Receipt.company_id == company.id))
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Company has receipts and cannot be deleted",
        )
    session.delete(company)
    session.commit()
