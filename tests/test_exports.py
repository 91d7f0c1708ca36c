from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook

from boletas.modules.identity.models import UserRole


def _save(client, headers, **payload) -> dict:
    resp = client.post("/api/receipts", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["receipt"]


def test_export_selected_receipts_to_xlsx(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))
    company = client.post("/api/companies", json={"name": "Andes SpA"}, headers=admin).json()

    later = _save(
        client,
        headers,
        receipt_id="BOL-20240210-BBBBBB",
        date="2024-02-10",
        total=45000,
        vendor="Copec",
        category="Transporte",
        company_id=company["id"],
    )
    earlier = _save(
        client,
        headers,
        receipt_id="BOL-20240101-AAAAAA",
        date="2024-01-01",
        total=10000,
        vendor="Farmacia Cruz Verde",
        category="Salud",
    )
    _save(client, headers, date="2024-03-01", total=1, vendor="No exportada")

    resp = client.post(
        "/api/receipts/export",
        json={"receipt_ids": [later["id"], earlier["id"]]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "boletas_seleccionadas.xlsx" in resp.headers["content-disposition"]

    ws = load_workbook(BytesIO(resp.content))["Boletas"]
    rows = list(ws.iter_rows(values_only=True))

    assert rows[0] == (
        "ID",
        "Fecha",
        "Empresa",
        "Proveedor",
        "Categoría",
        "Monto",
        "Monto formateado",
        "IVA",
    )
    assert rows[1] == (
        "BOL-20240101-AAAAAA",
        "01/01/2024",
        None,
        "Farmacia Cruz Verde",
        "Salud",
        10000,
        "$10.000",
        1900,
    )
    assert rows[2][0] == "BOL-20240210-BBBBBB"
    assert rows[2][2] == "Andes SpA"
    assert rows[2][6] == "$45.000"
    assert len(rows) == 3


def test_export_requires_selection(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    resp = client.post("/api/receipts/export", json={"receipt_ids": []}, headers=headers)
    assert resp.status_code == 400


def test_export_ignores_other_users_receipts(client, make_user, auth_headers):
    alice = auth_headers(make_user("alice@boletas.cl"))
    bob = auth_headers(make_user("bob@boletas.cl"))
    receipt = _save(client, alice, date="2024-01-01", total=1000, vendor="Jumbo")

    resp = client.post("/api/receipts/export", json={"receipt_ids": [receipt["id"]]}, headers=bob)
    assert resp.status_code == 404
