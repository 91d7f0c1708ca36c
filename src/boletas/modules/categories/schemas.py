from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    is_active: bool = True


class CategoryOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    is_active: bool
