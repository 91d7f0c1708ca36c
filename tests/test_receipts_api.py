from __future__ import annotations

import json
import re
from datetime import date

from boletas.api.deps import get_receipt_reader
from boletas.core.storage import get_storage
from boletas.modules.extraction.ocr import OcrError, ReaderOutput, ReceiptReader
from boletas.modules.identity.models import UserRole

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

FARMACIA_TEXT = """FARMACIA CRUZ VERDE
RUT: 76.123.456-7
BOLETA ELECTRONICA
FECHA: 01/01/2024
PARACETAMOL 500MG
TOTAL $ 10.000
"""


class StaticReader(ReceiptReader):
    provider = "static"

    def __init__(self, text: str = FARMACIA_TEXT, exc: Exception | None = None):
        self.text = text
        self.exc = exc

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:
        if self.exc:
            raise self.exc
        return ReaderOutput(provider=self.provider, text=self.text)


def _use_reader(client, reader: ReceiptReader) -> None:
    client.app_ref.dependency_overrides[get_receipt_reader] = lambda: reader


def _save(client, headers, **overrides):
    payload = {"date": "2024-01-01", "total": 10000, "vendor": "Farmacia", "category": "Salud"}
    payload.update(overrides)
    resp = client.post("/api/receipts", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_analyze_returns_fields_and_keeps_upload(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader())

    resp = client.post(
        "/api/receipts/analyze",
        files={"file": ("boleta.png", PNG, "image/png")},
        data={"client_id": "tarjeta-1"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()

    assert body["success"] is True
    assert body["client_id"] == "tarjeta-1"
    assert body["fields"]["total"] == 10000
    assert body["fields"]["date"] == "2024-01-01"
    assert body["fields"]["category"] == "Salud"
    assert body["fields"]["tax_amount"] == 1900
    assert body["validation"]["is_valid"] is True
    assert body["methods"]["total"] == "labeled"
    assert get_storage().list_keys(prefix=f"temp/{body['upload_id']}/") == [
        f"temp/{body['upload_id']}/boleta.png"
    ]


def test_analyze_rejects_unsupported_type(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader())

    resp = client.post(
        "/api/receipts/analyze",
        files={"file": ("notas.txt", b"hola", "text/plain")},
        headers=headers,
    )
    assert resp.status_code == 415


def test_analyze_requires_auth(client):
    resp = client.post(
        "/api/receipts/analyze", files={"file": ("boleta.png", PNG, "image/png")}
    )
    assert resp.status_code == 401


def test_analyze_ocr_failure_returns_placeholder(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader(exc=OcrError("down")))

    resp = client.post(
        "/api/receipts/analyze",
        files={"file": ("boleta.png", PNG, "image/png")},
        headers=headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["fields"]["vendor"] == "Error de procesamiento"
    assert body["validation"]["is_valid"] is False


def test_batch_analysis_is_keyed_by_client_id(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader())

    resp = client.post(
        "/api/receipts/analyze/batch",
        files=[
            ("files", ("uno.png", PNG, "image/png")),
            ("files", ("dos.png", PNG + b"2", "image/png")),
        ],
        data={"client_ids": ["primera"]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    results = resp.json()["results"]

    assert set(results) == {"primera", "dos.png-1"}
    assert results["primera"]["fields"]["total"] == 10000
    assert results["dos.png-1"]["filename"] == "dos.png"


def test_batch_rejects_duplicate_client_ids(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader())

    resp = client.post(
        "/api/receipts/analyze/batch",
        files=[
            ("files", ("uno.png", PNG, "image/png")),
            ("files", ("dos.png", PNG + b"2", "image/png")),
        ],
        data={"client_ids": ["tarjeta", "tarjeta"]},
        headers=headers,
    )
    assert resp.status_code == 400
    assert get_storage().list_keys(prefix="temp/") == []


class VisionReader(ReceiptReader):
    provider = "vision"

    def __init__(self, fields: dict):
        self.fields = fields

    def read(self, *, body: bytes, content_type: str) -> ReaderOutput:
        return ReaderOutput(provider=self.provider, fields=dict(self.fields))


def test_batch_survives_non_finite_vision_total(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, VisionReader(json.loads('{"total": 1e999, "vendor": "Jumbo"}')))

    resp = client.post(
        "/api/receipts/analyze/batch",
        files=[
            ("files", ("uno.png", PNG, "image/png")),
            ("files", ("dos.png", PNG + b"2", "image/png")),
        ],
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    results = resp.json()["results"]

    assert [r["fields"]["total"] for r in results.values()] == [0, 0]
    assert all(r["fields"]["vendor"] == "Jumbo" for r in results.values())
    assert all(r["validation"]["is_valid"] is False for r in results.values())


def test_save_receipt_attaches_analyzed_upload(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _use_reader(client, StaticReader())
    analyzed = client.post(
        "/api/receipts/analyze",
        files={"file": ("boleta.png", PNG, "image/png")},
        headers=headers,
    ).json()

    saved = _save(client, headers, total="$ 10.000", upload_id=analyzed["upload_id"])
    receipt = saved["receipt"]

    assert re.fullmatch(r"BOL-\d{8}-[0-9A-F]{6}", receipt["receipt_id"])
    assert receipt["total"] == 10000
    assert receipt["tax_amount"] == 1900
    assert receipt["category_name"] == "Salud"
    assert receipt["has_image"] is True
    assert saved["alerts"] == []
    assert get_storage().list_keys(prefix=f"temp/{analyzed['upload_id']}/") == []

    image = client.get(f"/api/receipts/{receipt['id']}/image", headers=headers)
    assert image.status_code == 200
    assert image.content == PNG
    assert image.headers["content-type"] == "image/png"


def test_save_with_unknown_upload_is_rejected(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    resp = client.post(
        "/api/receipts",
        json={"date": "2024-01-01", "total": 1000, "vendor": "X", "upload_id": "deadbeef"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_duplicate_receipt_id_conflicts(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _save(client, headers, receipt_id="BOL-20240101-AAAAAA")

    resp = client.post(
        "/api/receipts",
        json={"receipt_id": "BOL-20240101-AAAAAA", "date": "2024-01-02", "total": 1, "vendor": "Y"},
        headers=headers,
    )
    assert resp.status_code == 409


def test_invalid_amount_is_rejected(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    resp = client.post(
        "/api/receipts",
        json={"date": "2024-01-01", "total": "gratis", "vendor": "X"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_out_of_range_amounts_are_rejected(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    for total in (10**30, -5, "1.000.000.000.000"):
        resp = client.post(
            "/api/receipts",
            json={"date": "2024-01-01", "total": total, "vendor": "X"},
            headers=headers,
        )
        assert resp.status_code == 400, total
    resp = client.post(
        "/api/receipts",
        content='{"date": "2024-01-01", "total": NaN, "vendor": "X"}',
        headers={**headers, "content-type": "application/json"},
    )
    assert resp.status_code == 400


def test_list_filters_and_ownership(client, make_user, auth_headers):
    alice = auth_headers(make_user("alice@boletas.cl"))
    bob = auth_headers(make_user("bob@boletas.cl"))
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))

    _save(client, alice, vendor="Farmacia Cruz Verde", category="Salud", total=10000)
    _save(client, alice, vendor="Copec", category="Transporte", total=45000, date="2024-02-10")
    _save(client, bob, vendor="Jumbo", category="Alimentación", total=30000)

    mine = client.get("/api/receipts", headers=alice).json()
    assert {r["vendor"] for r in mine} == {"Farmacia Cruz Verde", "Copec"}

    by_category = client.get("/api/receipts", params={"category": "salud"}, headers=alice).json()
    assert [r["vendor"] for r in by_category] == ["Farmacia Cruz Verde"]

    by_amount = client.get("/api/receipts", params={"min_total": 20000}, headers=alice).json()
    assert [r["vendor"] for r in by_amount] == ["Copec"]

    by_date = client.get(
        "/api/receipts", params={"date_from": "2024-02-01", "date_to": "2024-02-28"}, headers=alice
    ).json()
    assert [r["vendor"] for r in by_date] == ["Copec"]

    searched = client.get("/api/receipts", params={"search": "cruz"}, headers=alice).json()
    assert len(searched) == 1

    assert len(client.get("/api/receipts", headers=admin).json()) == 3

    bob_receipt = client.get("/api/receipts", headers=bob).json()[0]
    assert client.get(f"/api/receipts/{bob_receipt['id']}", headers=alice).status_code == 404


def test_summary_groups_by_category_and_month(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _save(client, headers, total=10000, category="Salud", date="2024-01-05")
    _save(client, headers, total=5000, category="Salud", date="2024-02-05")
    _save(client, headers, total=2000, category="Hogar", date="2024-02-07")

    summary = client.get("/api/receipts/summary", headers=headers).json()

    assert summary["count"] == 3
    assert summary["total"] == 17000
    assert summary["tax_total"] == 1900 + 950 + 380
    assert summary["by_category"][0] == {"category": "Salud", "count": 2, "total": 15000}
    assert summary["by_month"] == [
        {"month": "2024-01", "count": 1, "total": 10000},
        {"month": "2024-02", "count": 2, "total": 7000},
    ]


def test_update_and_delete_receipt(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    receipt = _save(client, headers)["receipt"]

    resp = client.patch(
        f"/api/receipts/{receipt['id']}",
        json={"total": "20.000", "tax_amount": None, "vendor": "Salcobrand"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    updated = resp.json()
    assert updated["total"] == 20000
    assert updated["tax_amount"] == 3800
    assert updated["vendor"] == "Salcobrand"

    assert client.delete(f"/api/receipts/{receipt['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/receipts/{receipt['id']}", headers=headers).status_code == 404


def test_receipt_without_category_falls_into_otros(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    receipt = _save(client, headers, category=None)["receipt"]
    assert receipt["category_name"] == "Otros"
    assert receipt["date"] == date(2024, 1, 1).isoformat()
