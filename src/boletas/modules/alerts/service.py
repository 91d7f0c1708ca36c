from __future__ import annotations

import time
import uuid

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from boletas.core.config import settings
from boletas.core.logging import get_logger, log_event, monotonic_ms
from boletas.core.money import format_clp
from boletas.modules.alerts.evaluator import (
    ReceiptPoint,
    calculate_category_pattern,
    calculate_frequency_pattern,
    calculate_spending_pattern,
    check_alert_rule,
)
from boletas.modules.alerts.models import AlertNotification, AlertRule, AlertType
from boletas.modules.categories.models import Category
from boletas.modules.identity.models import User
from boletas.modules.receipts.models import Receipt

logger = get_logger(__name__)

TIMEFRAME_LABELS = {"DAILY": "diario", "WEEKLY": "semanal", "MONTHLY": "mensual"}


def list_rules(session: Session, *, user: User) -> list[AlertRule]:
    return list(
        session.scalars(
            select(AlertRule).where(AlertRule.user_id == user.id).order_by(AlertRule.created_at)
        )
    )


def get_rule_for_user(session: Session, *, rule_id: uuid.UUID, user: User) -> AlertRule:
    rule = session.scalar(
        select(AlertRule).where(AlertRule.id == rule_id, AlertRule.user_id == user.id)
    )
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert rule not found")
    return rule


def create_rule(
    session: Session,
    *,
    user: User,
    type: AlertType,
    threshold: float,
    category: str | None,
    timeframe,
    is_active: bool = True,
) -> AlertRule:
    if type == AlertType.CATEGORY:
        if not category or not category.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category rules require a category",
            )
        category = category.strip()
    else:
        category = None

    rule = AlertRule(
        user_id=user.id,
        type=type,
        threshold=threshold,
        category=category,
        timeframe=timeframe,
        is_active=is_active,
    )
    session.add(rule)
    session.commit()
    session.refresh(rule)
    log_event(logger, "alerts.rule.created", alert_rule_id=str(rule.id), rule_type=type.value)
    return rule


def set_rule_active(session: Session, *, rule: AlertRule, is_active: bool) -> AlertRule:
    rule.is_active = is_active
    session.add(rule)
    session.commit()
    session.refresh(rule)
    return rule


def delete_rule(session: Session, *, rule: AlertRule) -> None:
    # Notifications outlive the rule that raised them.
    session.execute(
        update(AlertNotification)
        .where(AlertNotification.rule_id == rule.id)
        .values(rule_id=None)
    )
    session.delete(rule)
    session.commit()


def list_notifications(
    session: Session, *, user: User, unread_only: bool = False
) -> list[AlertNotification]:
    stmt = (
        select(AlertNotification)
        .where(AlertNotification.user_id == user.id)
        .order_by(AlertNotification.created_at.desc())
    )
    if unread_only:
        stmt = stmt.where(AlertNotification.is_read.is_(False))
    return list(session.scalars(stmt))


def get_notification_for_user(
    session: Session, *, notification_id: uuid.UUID, user: User
) -> AlertNotification:
    notification = session.scalar(
        select(AlertNotification).where(
            AlertNotification.id == notification_id, AlertNotification.user_id == user.id
        )
    )
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


def set_notification_read(
    session: Session, *, notification: AlertNotification, is_read: bool
) -> AlertNotification:
    notification.is_read = is_read
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def receipt_point(receipt: Receipt) -> ReceiptPoint:
    return ReceiptPoint(
        total=receipt.total,
        date=receipt.date,
        category=receipt.category_name,
        vendor=receipt.vendor,
    )


def history_points(
    session: Session, *, user_id: uuid.UUID, exclude_id: uuid.UUID | None = None
) -> list[ReceiptPoint]:
    stmt = (
        select(Receipt.total, Receipt.date, Category.name, Receipt.vendor)
        .outerjoin(Category, Category.id == Receipt.category_id)
        .where(Receipt.user_id == user_id)
    )
    if exclude_id is not None:
        stmt = stmt.where(Receipt.id != exclude_id)
    return [
        ReceiptPoint(total=total, date=d, category=category, vendor=vendor)
        for total, d, category, vendor in session.execute(stmt)
    ]


def _alert_message(rule: AlertRule, history: list[ReceiptPoint], point: ReceiptPoint) -> str:
    vendor = point.vendor or "proveedor desconocido"
    if rule.type == AlertType.AMOUNT:
        pattern = calculate_spending_pattern(history)
        return (
            f"Gasto inusual: {format_clp(point.total)} en {vendor} "
            f"(promedio {format_clp(round(pattern.average))})"
        )
    if rule.type == AlertType.CATEGORY:
        pattern = calculate_category_pattern(history, rule.category or "")
        return (
            f"Gasto inusual en {rule.category}: {format_clp(point.total)} en {vendor} "
            f"(promedio {format_clp(round(pattern.average))})"
        )
    count = calculate_frequency_pattern(history, rule.timeframe.value)
    label = TIMEFRAME_LABELS.get(rule.timeframe.value, rule.timeframe.value.lower())
    return (
        f"Frecuencia de gastos alta: {count} boletas en el período {label} "
        f"(umbral {rule.threshold:g})"
    )


def evaluate_receipt(session: Session, *, receipt: Receipt) -> list[AlertNotification]:
    """
    Check the owner's active rules against a saved receipt.

    History is every other receipt of the same user; each triggered rule
    raises one notification.
    """
    start = time.monotonic()
    rules = list(
        session.scalars(
            select(AlertRule).where(
                AlertRule.user_id == receipt.user_id, AlertRule.is_active.is_(True)
            )
        )
    )
    if not rules:
        return []

    history = history_points(session, user_id=receipt.user_id, exclude_id=receipt.id)
    point = receipt_point(receipt)
    raised: list[AlertNotification] = []
    for rule in rules:
        if not check_alert_rule(rule, history, point, sigma=settings.alert_sigma_threshold):
            continue
        notification = AlertNotification(
            user_id=receipt.user_id,
            rule_id=rule.id,
            receipt_id=receipt.id,
            message=_alert_message(rule, history, point),
            is_read=False,
        )
        session.add(notification)
        raised.append(notification)

    if raised:
        session.commit()
        for notification in raised:
            session.refresh(notification)

    log_event(
        logger,
        "alerts.evaluate.finish",
        receipt_id=str(receipt.id),
        rule_count=len(rules),
        raised=len(raised),
        duration_ms=monotonic_ms(start),
    )
    return raised
