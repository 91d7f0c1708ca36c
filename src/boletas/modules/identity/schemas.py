from __future__ import annotations

import uuid

from pydantic import BaseModel, EmailStr, Field

from boletas.modules.identity.models import UserRole


class UserOut(BaseModel):
    id: uuid.UUID
    email: EmailStr
    full_name: str | None
    role: UserRole
    is_active: bool


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str | None = None
    password: str = Field(min_length=6)
    role: UserRole = UserRole.USER


class UserRegister(BaseModel):
    email: EmailStr
    full_name: str | None = None
    password: str = Field(min_length=6)


class UserUpdate(BaseModel):
    full_name: str | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
