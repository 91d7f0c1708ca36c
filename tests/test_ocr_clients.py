from __future__ import annotations

import base64
import json

import httpx
import pytest

from boletas.core.config import Settings
from boletas.modules.extraction.ocr import (
    AzureReadClient,
    NullReader,
    OcrError,
    OpenAIVisionClient,
    build_reader,
)

ENDPOINT = "https://vision.example.cognitiveservices.azure.com"
OPERATION_URL = ENDPOINT + "/vision/v3.2/read/analyzeResults/op-1"


def _azure_client(handler) -> AzureReadClient:
    return AzureReadClient(
        endpoint=ENDPOINT + "/",
        api_key="azure-key",
        http=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda _s: None,
    )


def test_azure_read_submits_then_polls_until_succeeded():
    polls = {"n": 0}
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, str(request.url)))
        assert request.headers["Ocp-Apim-Subscription-Key"] == "azure-key"
        if request.method == "POST":
            assert request.content == b"image-bytes"
            return httpx.Response(202, headers={"Operation-Location": OPERATION_URL})
        polls["n"] += 1
        if polls["n"] == 1:
            return httpx.Response(200, json={"status": "running"})
        return httpx.Response(
            200,
            json={
                "status": "succeeded",
                "analyzeResult": {
                    "readResults": [
                        {"lines": [{"text": "FARMACIA CRUZ VERDE"}, {"text": "TOTAL $ 10.000"}]},
                        {"lines": [{"text": "  "}, {"text": "GRACIAS"}]},
                    ]
                },
            },
        )

    out = _azure_client(handler).read(body=b"image-bytes", content_type="image/png")

    assert out.provider == "azure"
    assert out.text == "FARMACIA CRUZ VERDE\nTOTAL $ 10.000\nGRACIAS"
    assert out.fields is None
    assert seen[0] == ("POST", ENDPOINT + "/vision/v3.2/read/analyze")
    assert polls["n"] == 2


def test_azure_read_failed_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(202, headers={"Operation-Location": OPERATION_URL})
        return httpx.Response(200, json={"status": "failed"})

    with pytest.raises(OcrError):
        _azure_client(handler).read(body=b"x", content_type="image/png")


def test_azure_read_http_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"code": "401"}})

    with pytest.raises(OcrError):
        _azure_client(handler).read(body=b"x", content_type="image/png")


def test_azure_read_without_operation_location_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(202)

    with pytest.raises(OcrError):
        _azure_client(handler).read(body=b"x", content_type="image/png")


def _openai_client(handler) -> OpenAIVisionClient:
    return OpenAIVisionClient(
        api_key="sk-test",
        base_url="https://llm.example/v1/",
        model="vision-test",
        http=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def test_openai_vision_returns_structured_fields():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return _chat_response('{"date": "2024-01-01", "total": 10000, "vendor": "Cruz Verde"}')

    out = _openai_client(handler).read(body=b"jpeg-bytes", content_type="image/jpeg")

    assert out.provider == "openai"
    assert out.fields == {"date": "2024-01-01", "total": 10000, "vendor": "Cruz Verde"}
    assert captured["url"] == "https://llm.example/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    body = captured["body"]
    assert body["model"] == "vision-test"
    image_part = body["messages"][1]["content"][1]
    expected = "data:image/jpeg;base64," + base64.b64encode(b"jpeg-bytes").decode("ascii")
    assert image_part["image_url"]["url"] == expected


def test_openai_vision_accepts_fenced_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return _chat_response('Aquí está:\n```json\n{"total": "$ 5.990"}\n```')

    out = _openai_client(handler).read(body=b"x", content_type="image/png")
    assert out.fields == {"total": "$ 5.990"}


def test_openai_vision_rejects_non_json_and_pdf():
    def handler(request: httpx.Request) -> httpx.Response:
        return _chat_response("no puedo leer esta imagen")

    client = _openai_client(handler)
    with pytest.raises(OcrError):
        client.read(body=b"x", content_type="image/png")
    with pytest.raises(OcrError):
        client.read(body=b"%PDF-1.4", content_type="application/pdf")


def test_build_reader_picks_configured_provider():
    azure = build_reader(
        Settings(
            ocr_provider="azure",
            azure_vision_endpoint=ENDPOINT,
            azure_vision_key="k",
        )
    )
    openai = build_reader(Settings(ocr_provider="openai", openai_api_key="sk"))

    assert isinstance(azure, AzureReadClient)
    assert azure.supports_pdf
    assert isinstance(openai, OpenAIVisionClient)
    assert not openai.supports_pdf


def test_build_reader_without_credentials_is_null():
    reader = build_reader(Settings(ocr_provider="azure", azure_vision_endpoint=None, azure_vision_key=None))
    assert isinstance(reader, NullReader)
    with pytest.raises(OcrError):
        reader.read(body=b"x", content_type="image/png")
