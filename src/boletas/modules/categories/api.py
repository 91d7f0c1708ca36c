from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, require_role
from boletas.core.db import db_session
from boletas.modules.categories.schemas import CategoryIn, CategoryOut
from boletas.modules.categories.service import (
    create_category,
    delete_category,
    get_category,
    list_categories,
    update_category,
)
from boletas.modules.identity.models import User, UserRole

router = APIRouter(tags=["categories"])


@router.get("/categories", response_model=list[CategoryOut])
def list_categories_endpoint(
    include_inactive: bool = False,
    session: Session = Depends(db_session),
    _: User = Depends(get_current_user),
) -> list[CategoryOut]:
    categories = list_categories(session, include_inactive=include_inactive)
    return [CategoryOut.model_validate(c, from_attributes=True) for c in categories]


@router.post("/categories", response_model=CategoryOut)
def create_category_endpoint(
    payload: CategoryIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> CategoryOut:
    category = create_category(
        session, name=payload.name, description=payload.description, is_active=payload.is_active
    )
    return CategoryOut.model_validate(category, from_attributes=True)


@router.put("/categories/{category_id}", response_model=CategoryOut)
def update_category_endpoint(
    category_id: uuid.UUID,
    payload: CategoryIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> CategoryOut:
    category = update_category(
        session,
        category=get_category(session, category_id=category_id),
        changes=payload.model_dump(),
    )
    return CategoryOut.model_validate(category, from_attributes=True)


@router.delete("/categories/{category_id}")
def delete_category_endpoint(
    category_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_category(session, category=get_category(session, category_id=category_id))
    return Response(status_code=204)
