from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boletas.api.router import router as api_router
from boletas.bootstrap import bootstrap
from boletas.core.logging import RequestContextMiddleware, get_logger, log_event
from boletas.core.storage import StorageError

logger = get_logger(__name__)


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    log_event(logger, "storage.unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "File storage unavailable"})


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        bootstrap()
        yield

    app = FastAPI(title="Boletas", version="0.1.0", lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StorageError, storage_error_handler)
    app.include_router(api_router)
    return app


app = create_app()
