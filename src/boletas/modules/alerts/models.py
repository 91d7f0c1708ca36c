from __future__ import annotations

import enum
import uuid

from sqlalchemy import Boolean, Enum, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boletas.core.models import Activatable, Base, Timestamped, UUIDPrimaryKey


class AlertType(str, enum.Enum):
    AMOUNT = "AMOUNT"
    CATEGORY = "CATEGORY"
    FREQUENCY = "FREQUENCY"


class AlertTimeframe(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class AlertRule(UUIDPrimaryKey, Timestamped, Activatable, Base):
    __tablename__ = "alerts_rule"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    type: Mapped[AlertType] = mapped_column(Enum(AlertType, native_enum=False))
    threshold: Mapped[float] = mapped_column(Float, default=0.0)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    timeframe: Mapped[AlertTimeframe] = mapped_column(
        Enum(AlertTimeframe, native_enum=False), default=AlertTimeframe.MONTHLY
    )


class AlertNotification(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "alerts_notification"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    rule_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("alerts_rule.id"), nullable=True, index=True
    )
    receipt_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("receipts_receipt.id"), nullable=True, index=True
    )
    message: Mapped[str] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    rule = relationship("AlertRule")
