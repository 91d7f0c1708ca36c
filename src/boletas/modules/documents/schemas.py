from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class DocumentCategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class DocumentCategoryOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None


class DocumentOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    filename: str
    content_type: str | None
    byte_size: int
    category_id: uuid.UUID | None
    uploaded_by_id: uuid.UUID
    is_active: bool
    target_user_ids: list[uuid.UUID]
    created_at: datetime


class DocumentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category_id: uuid.UUID | None = None
    is_active: bool | None = None
    target_user_ids: list[uuid.UUID] | None = None
