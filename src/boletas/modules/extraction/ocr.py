from __future__ import annotations

import base64
import json
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from boletas.core.config import Settings
from boletas.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

VISION_PROMPT = (
    "Eres un asistente que extrae datos de boletas y facturas chilenas.\n"
    "Responde SOLO con un objeto JSON con estas claves:\n"
    '  "date": fecha de la compra en formato YYYY-MM-DD,\n'
    '  "total": monto total en pesos chilenos como número entero,\n'
    '  "vendor": nombre del comercio o empresa,\n'
    '  "category": una de Alimentación, Transporte, Oficina, Servicios, Salud, Hogar, Otros,\n'
    '  "taxAmount": IVA en pesos si aparece impreso,\n'
    '  "description": descripción breve de lo comprado.\n'
    'En Chile el punto separa miles: "$ 44.995" son 44995 pesos.\n'
    "Si un dato no aparece, usa null."
)


class OcrError(RuntimeError):
    pass


@dataclass(frozen=True)
class ReaderOutput:
    """What a reader produced: raw text to be interpreted, or already-structured fields."""

    provider: str
    text: str | None = None
    fields: dict[str, Any] | None = None

    def to_cache(self) -> dict[str, Any]:
        return {"text": self.text, "fields": self.fields}

    @classmethod
    def from_cache(cls, provider: str, payload: dict[str, Any]) -> ReaderOutput:
        fields = payload.get("fields")
        text = payload.get("text")
        return cls(
            provider=provider,
            text=text if isinstance(text, str) else None,
            fields=fields if isinstance(fields, dict) else None,
        )


class ReceiptReader:
    provider = "abstract"
    model = ""
    supports_pdf = False

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:  # pragma: no cover
        raise NotImplementedError


class NullReader(ReceiptReader):
    provider = "none"

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:
        raise OcrError("OCR provider not configured")


class AzureReadClient(ReceiptReader):
    """Azure Computer Vision Read API (v3.2): submit the image, then poll for lines."""

    provider = "azure"
    model = "read-v3.2"
    supports_pdf = True

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        http: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._http = http or httpx.Client(follow_redirects=True)
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._sleep = sleep

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:
        start = time.monotonic()
        url = self._endpoint + "/vision/v3.2/read/analyze"
        try:
            resp = self._http.post(
                url,
                headers={
                    "Ocp-Apim-Subscription-Key": self._api_key,
                    "Content-Type": "application/octet-stream",
                },
                content=body,
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise OcrError(f"Azure Read submit failed: {type(e).__name__}") from e

        operation_url = resp.headers.get("Operation-Location")
        if not operation_url:
            raise OcrError("Azure Read response without Operation-Location")

        deadline = start + self._timeout
        while True:
            if time.monotonic() > deadline:
                raise OcrError("Azure Read timed out")
            self._sleep(self._poll_interval)
            try:
                poll = self._http.get(
                    operation_url,
                    headers={"Ocp-Apim-Subscription-Key": self._api_key},
                    timeout=self._timeout,
                )
                poll.raise_for_status()
                payload = poll.json()
            except (httpx.HTTPError, ValueError) as e:
                raise OcrError(f"Azure Read poll failed: {type(e).__name__}") from e

            status = str(payload.get("status") or "").lower()
            if status == "succeeded":
                break
            if status == "failed":
                raise OcrError("Azure Read analysis failed")

        lines: list[str] = []
        for page in (payload.get("analyzeResult") or {}).get("readResults") or []:
            for line in page.get("lines") or []:
                text = line.get("text")
                if isinstance(text, str) and text.strip():
                    lines.append(text)

        log_event(
            logger,
            "ocr.read.success",
            provider=self.provider,
            line_count=len(lines),
            duration_ms=monotonic_ms(start),
        )
        return ReaderOutput(provider=self.provider, text="\n".join(lines))


class OpenAIVisionClient(ReceiptReader):
    """Chat-completions vision model returning the receipt fields as JSON."""

    provider = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        http: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/chat/completions"
        self.model = model
        self._http = http or httpx.Client(follow_redirects=True)
        self._timeout = timeout_seconds

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:
        if content_type == PDF_CONTENT_TYPE:
            raise OcrError("Vision model cannot read PDF documents")

        start = time.monotonic()
        image_b64 = base64.b64encode(body).decode("ascii")
        payload = {
            "model": self.model,
            "temperature": 0,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": VISION_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "Extrae los datos de esta boleta."},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{content_type};base64,{image_b64}"},
                        },
                    ],
                },
            ],
        }
        try:
            resp = self._http.post(
                self._url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
        except httpx.HTTPError as e:
            raise OcrError(f"Vision request failed: {type(e).__name__}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OcrError("Vision response malformed") from e

        obj = _parse_json_object(content if isinstance(content, str) else "")
        if not isinstance(obj, dict):
            raise OcrError("Vision response is not a JSON object")

        log_event(
            logger,
            "ocr.read.success",
            provider=self.provider,
            model=self.model,
            duration_ms=monotonic_ms(start),
        )
        return ReaderOutput(provider=self.provider, fields=obj)


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Models sometimes wrap the object in prose or a code fence.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None


def build_reader(settings: Settings, *, http: httpx.Client | None = None) -> ReceiptReader:
    if settings.ocr_provider == "azure":
        if settings.azure_vision_endpoint and settings.azure_vision_key:
            return AzureReadClient(
                endpoint=settings.azure_vision_endpoint,
                api_key=settings.azure_vision_key,
                http=http,
                timeout_seconds=settings.ocr_timeout_seconds,
                poll_interval_seconds=settings.azure_read_poll_interval_seconds,
            )
        log_event(logger, "ocr.provider.unconfigured", provider="azure")
    elif settings.ocr_provider == "openai":
        if settings.openai_api_key:
            return OpenAIVisionClient(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                model=settings.openai_model,
                http=http,
                timeout_seconds=settings.ocr_timeout_seconds,
            )
        log_event(logger, "ocr.provider.unconfigured", provider="openai")
    return NullReader()
