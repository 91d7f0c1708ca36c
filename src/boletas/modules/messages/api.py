from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, require_role
from boletas.core.db import db_session
from boletas.modules.identity.models import User, UserRole
from boletas.modules.messages.schemas import UserMessageIn, UserMessageOut, UserMessageStatus
from boletas.modules.messages.service import (
    create_message,
    delete_message,
    get_message,
    list_all_messages,
    list_messages_for,
    set_message_active,
    update_message,
)

router = APIRouter(tags=["messages"])


@router.get("/user-messages/all", response_model=list[UserMessageOut])
def list_all_messages_endpoint(
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> list[UserMessageOut]:
    return [UserMessageOut.model_validate(m, from_attributes=True) for m in list_all_messages(session)]


@router.get("/user-messages/{user_id}", response_model=list[UserMessageOut])
def list_user_messages_endpoint(
    user_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[UserMessageOut]:
    messages = list_messages_for(session, user_id=user_id, viewer=user)
    return [UserMessageOut.model_validate(m, from_attributes=True) for m in messages]


@router.post("/user-messages/{user_id}", response_model=UserMessageOut)
def create_message_endpoint(
    user_id: uuid.UUID,
    payload: UserMessageIn,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> UserMessageOut:
    message = create_message(
        session, user_id=user_id, author=admin, text=payload.message, is_active=payload.is_active
    )
    return UserMessageOut.model_validate(message, from_attributes=True)


@router.put("/user-messages/{user_id}/{message_id}", response_model=UserMessageOut)
def update_message_endpoint(
    user_id: uuid.UUID,
    message_id: uuid.UUID,
    payload: UserMessageIn,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> UserMessageOut:
    message = update_message(
        session,
        message=get_message(session, user_id=user_id, message_id=message_id),
        text=payload.message,
        is_active=payload.is_active,
    )
    return UserMessageOut.model_validate(message, from_attributes=True)


@router.put("/user-messages/{user_id}/{message_id}/status", response_model=UserMessageOut)
def set_message_status_endpoint(
    user_id: uuid.UUID,
    message_id: uuid.UUID,
    payload: UserMessageStatus,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> UserMessageOut:
    message = set_message_active(
        session,
        message=get_message(session, user_id=user_id, message_id=message_id),
        is_active=payload.is_active,
    )
    return UserMessageOut.model_validate(message, from_attributes=True)


@router.delete("/user-messages/{user_id}/{message_id}")
def delete_message_endpoint(
    user_id: uuid.UUID,
    message_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_message(session, message=get_message(session, user_id=user_id, message_id=message_id))
    return Response(status_code=204)
