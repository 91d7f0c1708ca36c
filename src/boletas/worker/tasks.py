from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import boletas.models  # noqa: F401
# isort: on

import time
import uuid

from sqlalchemy import select

from boletas.core.db import session_scope
from boletas.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
)
from boletas.worker.celery_app import celery_app

logger = get_logger(__name__)


def evaluate_receipt_alerts(*, receipt_id: str) -> int:
    from boletas.modules.alerts.service import evaluate_receipt
    from boletas.modules.receipts.models import Receipt

    with session_scope() as session:
        receipt = session.scalar(select(Receipt).where(Receipt.id == uuid.UUID(receipt_id)))
        if not receipt:
            log_event(logger, "alerts.evaluate.skipped", receipt_id=receipt_id)
            return 0
        return len(evaluate_receipt(session, receipt=receipt))


@celery_app.task(name="evaluate_receipt_alerts", bind=True)
def evaluate_receipt_alerts_task(self, receipt_id: str) -> int:
    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name="evaluate_receipt_alerts",
        celery_task_id=task_id,
        receipt_id=receipt_id,
    )
    try:
        raised = evaluate_receipt_alerts(receipt_id=receipt_id)
        log_event(
            logger,
            "celery.task.finish",
            task_name="evaluate_receipt_alerts",
            celery_task_id=task_id,
            receipt_id=receipt_id,
            raised=raised,
            duration_ms=monotonic_ms(start),
        )
        return raised
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="evaluate_receipt_alerts",
            celery_task_id=task_id,
            receipt_id=receipt_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)


@celery_app.task(name="cleanup_temp_uploads", bind=True)
def cleanup_temp_uploads_task(self) -> int:
    from boletas.core.storage import cleanup_temp_uploads

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(logger, "celery.task.start", task_name="cleanup_temp_uploads", celery_task_id=task_id)
    try:
        removed = cleanup_temp_uploads()
        log_event(
            logger,
            "celery.task.finish",
            task_name="cleanup_temp_uploads",
            celery_task_id=task_id,
            removed=removed,
            duration_ms=monotonic_ms(start),
        )
        return removed
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="cleanup_temp_uploads",
            celery_task_id=task_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)
