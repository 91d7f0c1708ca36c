from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from boletas.modules.alerts.models import AlertTimeframe, AlertType


class AlertRuleIn(BaseModel):
    type: AlertType
    threshold: float = Field(default=0.0, ge=0)
    category: str | None = None
    timeframe: AlertTimeframe = AlertTimeframe.MONTHLY
    is_active: bool = True


class AlertRuleToggle(BaseModel):
    is_active: bool


class AlertRuleOut(BaseModel):
    id: uuid.UUID
    type: AlertType
    threshold: float
    category: str | None
    timeframe: AlertTimeframe
    is_active: bool
    created_at: datetime


class AlertNotificationOut(BaseModel):
    id: uuid.UUID
    rule_id: uuid.UUID | None
    receipt_id: uuid.UUID | None
    message: str
    is_read: bool
    created_at: datetime


class AlertNotificationUpdate(BaseModel):
    is_read: bool
