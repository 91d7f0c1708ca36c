from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, require_role
from boletas.core.db import db_session
from boletas.modules.companies.schemas import CompanyIn, CompanyOut
from boletas.modules.companies.service import (
    create_company,
    delete_company,
    get_company,
    list_companies,
    update_company,
)
from boletas.modules.identity.models import User, UserRole

router = APIRouter(tags=["companies"])


@router.get("/companies", response_model=list[CompanyOut])
def list_companies_endpoint(
    session: Session = Depends(db_session),
    _: User = Depends(get_current_user),
) -> list[CompanyOut]:
    return [CompanyOut.model_validate(c, from_attributes=True) for c in list_companies(session)]


@router.post("/companies", response_model=CompanyOut)
def create_company_endpoint(
    payload: CompanyIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> CompanyOut:
    company = create_company(session, name=payload.name, rut=payload.rut)
    return CompanyOut.model_validate(company, from_attributes=True)


@router.put("/companies/{company_id}", response_model=CompanyOut)
def update_company_endpoint(
    company_id: uuid.UUID,
    payload: CompanyIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> CompanyOut:
    company = update_company(
        session,
        company=get_company(session, company_id=company_id),
        name=payload.name,
        rut=payload.rut,
    )
    return CompanyOut.model_validate(company, from_attributes=True)


@router.delete("/companies/{company_id}")
def delete_company_endpoint(
    company_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_company(session, company=get_company(session, company_id=company_id))
    return Response(status_code=204)
