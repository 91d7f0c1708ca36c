from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, require_role
from boletas.core.db import db_session
from boletas.core.security import create_access_token
from boletas.modules.identity.models import User, UserRole
from boletas.modules.identity.schemas import (
    TokenOut,
    UserCreate,
    UserOut,
    UserRegister,
    UserUpdate,
)
from boletas.modules.identity.service import (
    authenticate_user,
    create_user,
    get_user,
    list_users,
    update_user,
)

router = APIRouter(tags=["identity"])


@router.post("/auth/token", response_model=TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(db_session),
) -> TokenOut:
    user = authenticate_user(session, email=form_data.username, password=form_data.password)
    return TokenOut(access_token=create_access_token(subject=str(user.id)))


@router.post("/auth/register", response_model=TokenOut)
def register(payload: UserRegister, session: Session = Depends(db_session)) -> TokenOut:
    user = create_user(
        session,
        email=str(payload.email),
        password=payload.password,
        role=UserRole.USER,
        full_name=payload.full_name,
    )
    return TokenOut(access_token=create_access_token(subject=str(user.id)))


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user, from_attributes=True)


@router.get("/users", response_model=list[UserOut])
def list_users_endpoint(
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> list[UserOut]:
    return [UserOut.model_validate(u, from_attributes=True) for u in list_users(session)]


@router.post("/users", response_model=UserOut)
def create_user_endpoint(
    payload: UserCreate,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> UserOut:
    user = create_user(
        session,
        email=str(payload.email),
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
    )
    return UserOut.model_validate(user, from_attributes=True)


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user_endpoint(
    user_id: uuid.UUID,
    payload: UserUpdate,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> UserOut:
    user = update_user(
        session,
        user=get_user(session, user_id=user_id),
        changes=payload.model_dump(exclude_unset=True),
    )
    return UserOut.model_validate(user, from_attributes=True)
