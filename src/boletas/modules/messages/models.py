from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from boletas.core.models import Activatable, Base, Timestamped, UUIDPrimaryKey


class UserMessage(UUIDPrimaryKey, Timestamped, Activatable, Base):
    __tablename__ = "messages_user_message"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    author_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True
    )
    message: Mapped[str] = mapped_column(Text)
