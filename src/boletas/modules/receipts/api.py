from __future__ import annotations

import uuid
from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user, get_receipt_reader
from boletas.core.db import db_session
from boletas.core.logging import get_logger, log_event
from boletas.core.storage import sanitize_filename
from boletas.modules.alerts.schemas import AlertNotificationOut
from boletas.modules.extraction.ocr import ReceiptReader
from boletas.modules.extraction.service import AnalysisResult, UploadedFile
from boletas.modules.identity.models import User
from boletas.modules.receipts.schemas import (
    AnalysisOut,
    BatchAnalysisOut,
    ExtractedFieldsOut,
    ReceiptCreate,
    ReceiptOut,
    ReceiptSavedOut,
    ReceiptSummaryOut,
    ReceiptUpdate,
    ValidationOut,
)
from boletas.modules.receipts.service import (
    analyze_files,
    create_receipt,
    delete_receipt,
    get_receipt_for_user,
    get_receipt_image,
    list_receipts,
    receipt_summary,
    update_receipt,
)
from boletas.worker.tasks import evaluate_receipt_alerts_task

router = APIRouter(tags=["receipts"])
logger = get_logger(__name__)


def _analysis_out(upload_id: str, result: AnalysisResult) -> AnalysisOut:
    extraction = result.extraction
    return AnalysisOut(
        upload_id=upload_id,
        client_id=result.client_id,
        filename=result.filename,
        success=result.success,
        message=result.message,
        provider=result.provider,
        fields=ExtractedFieldsOut(**asdict(extraction.fields)),
        methods=extraction.methods,
        validation=ValidationOut(
            is_valid=result.validation.is_valid,
            issues=result.validation.issues,
            confidence=result.validation.confidence,
        ),
        text_excerpt=extraction.text_excerpt,
    )


async def _read_upload(upload: UploadFile, *, client_id: str | None) -> UploadedFile:
    body = await upload.read()
    filename = sanitize_filename(upload.filename)
    log_event(
        logger,
        "upload.received",
        upload_filename=filename,
        content_type=upload.content_type,
        byte_size=len(body),
    )
    return UploadedFile(
        filename=filename,
        content_type=(upload.content_type or "").lower(),
        body=body,
        client_id=client_id,
    )


@router.post("/receipts/analyze", response_model=AnalysisOut)
async def analyze_receipt_endpoint(
    file: UploadFile = File(...),
    client_id: str | None = Form(default=None),
    session: Session = Depends(db_session),
    reader: ReceiptReader = Depends(get_receipt_reader),
    _: User = Depends(get_current_user),
) -> AnalysisOut:
    uploaded = await _read_upload(file, client_id=client_id)
    [(upload_id, result)] = await run_in_threadpool(
        analyze_files, session, reader=reader, files=[uploaded]
    )
    return _analysis_out(upload_id, result)


@router.post("/receipts/analyze/batch", response_model=BatchAnalysisOut)
async def analyze_receipts_batch_endpoint(
    files: list[UploadFile] = File(...),
    client_ids: list[str] = Form(default=[]),
    session: Session = Depends(db_session),
    reader: ReceiptReader = Depends(get_receipt_reader),
    _: User = Depends(get_current_user),
) -> BatchAnalysisOut:
    uploads: list[UploadedFile] = []
    for idx, f in enumerate(files):
        client_id = client_ids[idx] if idx < len(client_ids) and client_ids[idx] else None
        uploaded = await _read_upload(f, client_id=client_id)
        uploaded.client_id = client_id or f"{uploaded.filename}-{idx}"
        uploads.append(uploaded)
    if len({u.client_id for u in uploads}) != len(uploads):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Duplicate client_id in batch"
        )

    analyzed = await run_in_threadpool(analyze_files, session, reader=reader, files=uploads)
    return BatchAnalysisOut(
        results={
            upload.client_id: _analysis_out(upload_id, result)
            for upload, (upload_id, result) in zip(uploads, analyzed, strict=True)
        }
    )


@router.post("/receipts", response_model=ReceiptSavedOut)
def create_receipt_endpoint(
    payload: ReceiptCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ReceiptSavedOut:
    receipt, alerts = create_receipt(session, user=user, payload=payload)
    return ReceiptSavedOut(
        receipt=ReceiptOut.model_validate(receipt, from_attributes=True),
        alerts=[AlertNotificationOut.model_validate(a, from_attributes=True) for a in alerts],
    )


@router.get("/receipts", response_model=list[ReceiptOut])
def list_receipts_endpoint(
    company_id: uuid.UUID | None = None,
    category: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    min_total: int | None = None,
    max_total: int | None = None,
    search: str | None = None,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ReceiptOut]:
    receipts = list_receipts(
        session,
        user=user,
        company_id=company_id,
        category=category,
        date_from=date_from,
        date_to=date_to,
        min_total=min_total,
        max_total=max_total,
        search=search,
    )
    return [ReceiptOut.model_validate(r, from_attributes=True) for r in receipts]


@router.get("/receipts/summary", response_model=ReceiptSummaryOut)
def receipt_summary_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ReceiptSummaryOut:
    return ReceiptSummaryOut(**receipt_summary(session, user=user))


@router.get("/receipts/{receipt_id}", response_model=ReceiptOut)
def get_receipt_endpoint(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ReceiptOut:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    return ReceiptOut.model_validate(receipt, from_attributes=True)


@router.patch("/receipts/{receipt_id}", response_model=ReceiptOut)
def update_receipt_endpoint(
    receipt_id: uuid.UUID,
    payload: ReceiptUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ReceiptOut:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    receipt, reevaluate = update_receipt(
        session, receipt=receipt, changes=payload.model_dump(exclude_unset=True)
    )
    if reevaluate:
        async_result = evaluate_receipt_alerts_task.delay(str(receipt.id))
        log_event(
            logger,
            "celery.task.enqueued",
            task_name="evaluate_receipt_alerts",
            celery_task_id=async_result.id,
            receipt_id=str(receipt.id),
        )
    return ReceiptOut.model_validate(receipt, from_attributes=True)


@router.delete("/receipts/{receipt_id}")
def delete_receipt_endpoint(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    delete_receipt(session, receipt=get_receipt_for_user(session, receipt_id=receipt_id, user=user))
    return Response(status_code=204)


@router.get("/receipts/{receipt_id}/image")
def get_receipt_image_endpoint(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    body, content_type = get_receipt_image(receipt=receipt)
    return Response(content=body, media_type=content_type)
