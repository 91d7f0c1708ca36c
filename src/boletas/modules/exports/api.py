from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from boletas.api.deps import get_current_user
from boletas.core.db import db_session
from boletas.modules.exports.service import EXPORT_FILENAME, XLSX_MEDIA_TYPE, export_receipts
from boletas.modules.identity.models import User
from boletas.modules.receipts.schemas import ReceiptExportIn

router = APIRouter(tags=["exports"])


@router.post("/receipts/export")
def export_receipts_endpoint(
    payload: ReceiptExportIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    body = export_receipts(session, user=user, receipt_ids=payload.receipt_ids)
    return Response(
        content=body,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )
