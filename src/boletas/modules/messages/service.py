from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from boletas.core.logging import get_logger, log_event
from boletas.modules.identity.models import User, UserRole
from boletas.modules.identity.service import get_user
from boletas.modules.messages.models import UserMessage

logger = get_logger(__name__)


def list_all_messages(session: Session) -> list[UserMessage]:
    return list(session.scalars(select(UserMessage).order_by(UserMessage.created_at.desc())))


def list_messages_for(session: Session, *, user_id: uuid.UUID, viewer: User) -> list[UserMessage]:
    """Admins see every message of a user; a user sees only their own active ones."""
    if viewer.role != UserRole.ADMIN and viewer.id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    stmt = (
        select(UserMessage)
        .where(UserMessage.user_id == user_id)
        .order_by(UserMessage.created_at.desc())
    )
    if viewer.role != UserRole.ADMIN:
        stmt = stmt.where(UserMessage.is_active.is_(True))
    return list(session.scalars(stmt))


def get_message(session: Session, *, user_id: uuid.UUID, message_id: uuid.UUID) -> UserMessage:
    message = session.scalar(
        select(UserMessage).where(UserMessage.id == message_id, UserMessage.user_id == user_id)
    )
    if not message:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


def create_message(
    session: Session, *, user_id: uuid.UUID, author: User, text: str, is_active: bool = True
) -> UserMessage:
    get_user(session, user_id=user_id)
    message = UserMessage(
        user_id=user_id, author_id=author.id, message=text.strip(), is_active=is_active
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    log_event(logger, "user_message.created", message_id=str(message.id), target_user_id=str(user_id))
    return message


def update_message(
    session: Session, *, message: UserMessage, text: str, is_active: bool | None = None
) -> UserMessage:
    message.message = text.strip()
    if is_active is not None:
        message.is_active = is_active
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def set_message_active(session: Session, *, message: UserMessage, is_active: bool) -> UserMessage:
    message.is_active = is_active
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def delete_message(session: Session, *, message: UserMessage) -> None:
    session.delete(message)
    session.commit()
