from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from boletas.core.storage import diagnose_storage
from boletas.modules.alerts.api import router as alerts_router
from boletas.modules.categories.api import router as categories_router
from boletas.modules.companies.api import router as companies_router
from boletas.modules.documents.api import router as documents_router
from boletas.modules.exports.api import router as exports_router
from boletas.modules.identity.api import router as identity_router
from boletas.modules.messages.api import router as messages_router
from boletas.modules.receipts.api import router as receipts_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(companies_router, prefix="/api")
router.include_router(categories_router, prefix="/api")
router.include_router(exports_router, prefix="/api")
router.include_router(receipts_router, prefix="/api")
router.include_router(alerts_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(messages_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/storage")
def healthz_storage(*, write_test: bool = False) -> JSONResponse:
    result = diagnose_storage(write_test=write_test)
    status_code = 200 if result.get("ok") else 503
    return JSONResponse(status_code=status_code, content=result)
