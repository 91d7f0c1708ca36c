from __future__ import annotations

import io
import time
import uuid

from fastapi import HTTPException, status
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import select
from sqlalchemy.orm import Session

from boletas.core.logging import get_logger, log_event, monotonic_ms
from boletas.core.money import format_clp
from boletas.modules.identity.models import User, UserRole
from boletas.modules.receipts.models import Receipt

logger = get_logger(__name__)

SHEET_TITLE = "Boletas"
EXPORT_FILENAME = "boletas_seleccionadas.xlsx"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADERS = (
    "ID",
    "Fecha",
    "Empresa",
    "Proveedor",
    "Categoría",
    "Monto",
    "Monto formateado",
    "IVA",
)
COLUMN_WIDTHS = (24, 12, 28, 32, 16, 12, 18, 12)


def build_receipts_xlsx(receipts: list[Receipt]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    for col, header in enumerate(HEADERS, start=1):
        ws.cell(row=1, column=col, value=header).font = Font(bold=True)
    for col, width in enumerate(COLUMN_WIDTHS, start=1):
        ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = width

    row = 2
    for r in receipts:
        ws.cell(row=row, column=1, value=r.receipt_id)
        ws.cell(row=row, column=2, value=f"{r.date:%d/%m/%Y}")
        ws.cell(row=row, column=3, value=r.company_name)
        ws.cell(row=row, column=4, value=r.vendor)
        ws.cell(row=row, column=5, value=r.category_name)
        ws.cell(row=row, column=6, value=r.total)
        ws.cell(row=row, column=7, value=format_clp(r.total))
        ws.cell(row=row, column=8, value=r.tax_amount)
        row += 1

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def export_receipts(session: Session, *, user: User, receipt_ids: list[uuid.UUID]) -> bytes:
    if not receipt_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No receipts selected")

    start = time.monotonic()
    stmt = select(Receipt).where(Receipt.id.in_(set(receipt_ids)))
    if user.role != UserRole.ADMIN:
        stmt = stmt.where(Receipt.user_id == user.id)
    receipts = sorted(session.scalars(stmt), key=lambda r: (r.date, r.receipt_id))
    if not receipts:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipts not found")

    body = build_receipts_xlsx(receipts)
    log_event(
        logger,
        "export.finish",
        receipt_count=len(receipts),
        byte_size=len(body),
        duration_ms=monotonic_ms(start),
    )
    return body
