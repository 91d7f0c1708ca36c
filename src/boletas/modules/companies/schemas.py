from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class CompanyIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    rut: str | None = None


class CompanyOut(BaseModel):
    id: uuid.UUID
    name: str
    rut: str | None
    created_at: datetime
