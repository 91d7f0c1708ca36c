from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class UserMessageIn(BaseModel):
    message: str = Field(min_length=1)
    is_active: bool = True


class UserMessageStatus(BaseModel):
    is_active: bool


class UserMessageOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    message: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
