from __future__ import annotations

import mimetypes
import secrets
import uuid
from collections import defaultdict
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from boletas.core.config import settings
from boletas.core.logging import get_logger, log_event
from boletas.core.money import estimate_tax, parse_pesos
from boletas.core.storage import (
    RECEIPTS_PREFIX,
    TEMP_PREFIX,
    StorageError,
    get_storage,
    sanitize_filename,
)
from boletas.modules.alerts.models import AlertNotification
from boletas.modules.alerts.service import evaluate_receipt
from boletas.modules.categories.models import Category
from boletas.modules.categories.service import resolve_category
from boletas.modules.companies.service import get_company
from boletas.modules.extraction.fields import DEFAULT_CATEGORY
from boletas.modules.extraction.ocr import ReceiptReader
from boletas.modules.extraction.service import AnalysisResult, UploadedFile, analyze_uploads
from boletas.modules.identity.models import User, UserRole
from boletas.modules.receipts.models import Receipt
from boletas.modules.receipts.schemas import ReceiptCreate

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "application/pdf",
}

_UPLOAD_ID_CHARS = set("0123456789abcdef")
# Receipt amounts are stored in 32-bit INTEGER columns.
MAX_STORED_AMOUNT = 2**31 - 1


def validate_upload(*, filename: str, content_type: str | None, size: int) -> None:
    if (content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported file type: {content_type or 'unknown'}",
        )
    if size == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Empty file: {filename}")
    if size > settings.max_receipt_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large: {filename}",
        )


def store_temp_upload(*, filename: str, body: bytes) -> str:
    upload_id = uuid.uuid4().hex
    get_storage().put(key=f"{TEMP_PREFIX}{upload_id}/{sanitize_filename(filename)}", body=body)
    return upload_id


def find_temp_upload(upload_id: str) -> str | None:
    if not upload_id or not set(upload_id) <= _UPLOAD_ID_CHARS:
        return None
    keys = get_storage().list_keys(prefix=f"{TEMP_PREFIX}{upload_id}/")
    return keys[0] if keys else None


def analyze_files(
    session: Session, *, reader: ReceiptReader, files: list[UploadedFile]
) -> list[tuple[str, AnalysisResult]]:
    """Keep each upload under temp/ so a later save can attach it, then analyze them all."""
    for f in files:
        validate_upload(filename=f.filename, content_type=f.content_type, size=len(f.body))
    upload_ids = [store_temp_upload(filename=f.filename, body=f.body) for f in files]
    log_event(logger, "extraction.start", provider=reader.provider, file_count=len(files))
    results = analyze_uploads(session, reader, files)
    return list(zip(upload_ids, results, strict=True))


def generate_receipt_id(today: date | None = None) -> str:
    d = today or date.today()
    return f"BOL-{d:%Y%m%d}-{secrets.token_hex(3).upper()}"


def coerce_amount(raw, *, field: str) -> int:
    amount = parse_pesos(raw)
    if amount is None or not 0 <= amount <= MAX_STORED_AMOUNT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid amount for {field}"
        )
    return amount


def _commit_or_conflict(session: Session, *, receipt_id: str) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Receipt ID already exists: {receipt_id}",
        ) from e


def create_receipt(
    session: Session, *, user: User, payload: ReceiptCreate
) -> tuple[Receipt, list[AlertNotification]]:
    total = coerce_amount(payload.total, field="total")
    if payload.tax_amount is None or payload.tax_amount == "":
        tax_amount = estimate_tax(total, rate=settings.iva_rate)
    else:
        tax_amount = coerce_amount(payload.tax_amount, field="tax_amount")

    company = get_company(session, company_id=payload.company_id) if payload.company_id else None

    temp_key = None
    if payload.upload_id:
        temp_key = find_temp_upload(payload.upload_id)
        if not temp_key:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Upload not found or expired"
            )

    category = resolve_category(session, name=payload.category or DEFAULT_CATEGORY)
    receipt_id = (payload.receipt_id or "").strip() or generate_receipt_id()

    receipt = Receipt(
        id=uuid.uuid4(),
        receipt_id=receipt_id,
        user_id=user.id,
        company_id=company.id if company else None,
        category_id=category.id if category else None,
        date=payload.date,
        total=total,
        tax_amount=tax_amount,
        vendor=payload.vendor.strip(),
        description=payload.description,
        raw_text_excerpt=(payload.raw_text_excerpt or "")[:500] or None,
        extraction_confidence=payload.extraction_confidence,
    )
    session.add(receipt)
    _commit_or_conflict(session, receipt_id=receipt_id)

    if temp_key:
        _attach_upload(session, receipt=receipt, temp_key=temp_key)

    session.refresh(receipt)
    log_event(
        logger,
        "receipt.created",
        receipt_id=str(receipt.id),
        receipt_number=receipt.receipt_id,
        total=receipt.total,
        has_image=receipt.has_image,
    )

    alerts = evaluate_receipt(session, receipt=receipt)
    return receipt, alerts


def _attach_upload(session: Session, *, receipt: Receipt, temp_key: str) -> None:
    filename = temp_key.rsplit("/", 1)[-1]
    try:
        stored = get_storage().move(
            src_key=temp_key, dst_key=f"{RECEIPTS_PREFIX}{receipt.id}/{filename}"
        )
    except StorageError:
        # The receipt is already saved; it just stays without an image.
        log_event(logger, "receipt.image.attach_failed", receipt_id=str(receipt.id))
        return
    receipt.image_key = stored.key
    receipt.image_content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    session.add(receipt)
    session.commit()


def list_receipts(
    session: Session,
    *,
    user: User,
    company_id: uuid.UUID | None = None,
    category: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    min_total: int | None = None,
    max_total: int | None = None,
    search: str | None = None,
) -> list[Receipt]:
    stmt = select(Receipt).order_by(Receipt.date.desc(), Receipt.created_at.desc())
    if user.role != UserRole.ADMIN:
        stmt = stmt.where(Receipt.user_id == user.id)
    if company_id:
        stmt = stmt.where(Receipt.company_id == company_id)
    if category:
        stmt = stmt.join(Category, Category.id == Receipt.category_id).where(
            func.lower(Category.name) == category.strip().lower()
        )
    if date_from:
        stmt = stmt.where(Receipt.date >= date_from)
    if date_to:
        stmt = stmt.where(Receipt.date <= date_to)
    if min_total is not None:
        stmt = stmt.where(Receipt.total >= min_total)
    if max_total is not None:
        stmt = stmt.where(Receipt.total <= max_total)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Receipt.receipt_id).like(pattern),
                func.lower(Receipt.vendor).like(pattern),
                func.lower(func.coalesce(Receipt.description, "")).like(pattern),
            )
        )
    return list(session.scalars(stmt))


def get_receipt_for_user(session: Session, *, receipt_id: uuid.UUID, user: User) -> Receipt:
    receipt = session.scalar(select(Receipt).where(Receipt.id == receipt_id))
    if not receipt or (user.role != UserRole.ADMIN and receipt.user_id != user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt


ALERT_RELEVANT_FIELDS = {"total", "date", "category"}


def update_receipt(session: Session, *, receipt: Receipt, changes: dict) -> tuple[Receipt, bool]:
    """Apply a partial update. Returns the receipt and whether alert inputs changed."""
    if "receipt_id" in changes:
        new_id = str(changes["receipt_id"] or "").strip()
        if not new_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="receipt_id cannot be empty"
            )
        receipt.receipt_id = new_id
    if "total" in changes:
        receipt.total = coerce_amount(changes["total"], field="total")
    if "tax_amount" in changes:
        raw = changes["tax_amount"]
        receipt.tax_amount = (
            estimate_tax(receipt.total, rate=settings.iva_rate)
            if raw is None or raw == ""
            else coerce_amount(raw, field="tax_amount")
        )
    if "date" in changes and changes["date"] is not None:
        receipt.date = changes["date"]
    if "vendor" in changes and changes["vendor"]:
        receipt.vendor = str(changes["vendor"]).strip()
    if "description" in changes:
        receipt.description = changes["description"]
    if "company_id" in changes:
        company_id = changes["company_id"]
        receipt.company_id = get_company(session, company_id=company_id).id if company_id else None
    if "category" in changes:
        category = resolve_category(session, name=changes["category"] or DEFAULT_CATEGORY)
        receipt.category_id = category.id if category else None

    session.add(receipt)
    _commit_or_conflict(session, receipt_id=receipt.receipt_id)
    session.refresh(receipt)
    log_event(
        logger,
        "receipt.updated",
        receipt_id=str(receipt.id),
        changed=sorted(changes),
    )
    return receipt, bool(ALERT_RELEVANT_FIELDS & set(changes))


def delete_receipt(session: Session, *, receipt: Receipt) -> None:
    if receipt.image_key:
        try:
            get_storage().delete(key=receipt.image_key)
        except StorageError:
            log_event(logger, "receipt.image.delete_failed", receipt_id=str(receipt.id))
    session.execute(
        update(AlertNotification)
        .where(AlertNotification.receipt_id == receipt.id)
        .values(receipt_id=None)
    )
    receipt_pk = str(receipt.id)
    session.delete(receipt)
    session.commit()
    log_event(logger, "receipt.deleted", receipt_id=receipt_pk)


def get_receipt_image(*, receipt: Receipt) -> tuple[bytes, str]:
    if not receipt.image_key:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt has no image")
    try:
        body = get_storage().get(key=receipt.image_key)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found") from e
    return body, receipt.image_content_type or "application/octet-stream"


def receipt_summary(session: Session, *, user: User) -> dict:
    rows = session.execute(
        select(Receipt.date, Receipt.total, Receipt.tax_amount, Category.name)
        .outerjoin(Category, Category.id == Receipt.category_id)
        .where(Receipt.user_id == user.id)
    ).all()

    by_category: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    by_month: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for d, total, _tax, category in rows:
        bucket = by_category[category or DEFAULT_CATEGORY]
        bucket[0] += 1
        bucket[1] += total
        month = by_month[f"{d:%Y-%m}"]
        month[0] += 1
        month[1] += total

    return {
        "count": len(rows),
        "total": sum(r[1] for r in rows),
        "tax_total": sum(r[2] or 0 for r in rows),
        "by_category": [
            {"category": name, "count": c, "total": t}
            for name, (c, t) in sorted(by_category.items(), key=lambda kv: -kv[1][1])
        ],
        "by_month": [
            {"month": m, "count": c, "total": t} for m, (c, t) in sorted(by_month.items())
        ],
    }
