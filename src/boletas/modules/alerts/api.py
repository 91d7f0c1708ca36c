from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user
from boletas.core.db import db_session
from boletas.modules.alerts.schemas import (
    AlertNotificationOut,
    AlertNotificationUpdate,
    AlertRuleIn,
    AlertRuleOut,
    AlertRuleToggle,
)
from boletas.modules.alerts.service import (
    create_rule,
    delete_rule,
    get_notification_for_user,
    get_rule_for_user,
    list_notifications,
    list_rules,
    set_notification_read,
    set_rule_active,
)
from boletas.modules.identity.models import User

router = APIRouter(tags=["alerts"])


@router.get("/alerts/rules", response_model=list[AlertRuleOut])
def list_rules_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[AlertRuleOut]:
    return [AlertRuleOut.model_validate(r, from_attributes=True) for r in list_rules(session, user=user)]


@router.post("/alerts/rules", response_model=AlertRuleOut)
def create_rule_endpoint(
    payload: AlertRuleIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> AlertRuleOut:
    rule = create_rule(
        session,
        user=user,
        type=payload.type,
        threshold=payload.threshold,
        category=payload.category,
        timeframe=payload.timeframe,
        is_active=payload.is_active,
    )
    return AlertRuleOut.model_validate(rule, from_attributes=True)


@router.put("/alerts/rules/{rule_id}", response_model=AlertRuleOut)
def toggle_rule_endpoint(
    rule_id: uuid.UUID,
    payload: AlertRuleToggle,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> AlertRuleOut:
    rule = get_rule_for_user(session, rule_id=rule_id, user=user)
    rule = set_rule_active(session, rule=rule, is_active=payload.is_active)
    return AlertRuleOut.model_validate(rule, from_attributes=True)


@router.delete("/alerts/rules/{rule_id}")
def delete_rule_endpoint(
    rule_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    delete_rule(session, rule=get_rule_for_user(session, rule_id=rule_id, user=user))
    return Response(status_code=204)


@router.get("/alerts/notifications", response_model=list[AlertNotificationOut])
def list_notifications_endpoint(
    unread_only: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[AlertNotificationOut]:
    notifications = list_notifications(session, user=user, unread_only=unread_only)
    return [AlertNotificationOut.model_validate(n, from_attributes=True) for n in notifications]


@router.put("/alerts/notifications/{notification_id}", response_model=AlertNotificationOut)
def update_notification_endpoint(
    notification_id: uuid.UUID,
    payload: AlertNotificationUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> AlertNotificationOut:
    notification = get_notification_for_user(session, notification_id=notification_id, user=user)
    notification = set_notification_read(session, notification=notification, is_read=payload.is_read)
    return AlertNotificationOut.model_validate(notification, from_attributes=True)
