from __future__ import annotations

from boletas.modules.identity.models import UserRole


def _upload(client, headers, *, name="Contrato", targets=(), filename="contrato.pdf", body=b"%PDF-1.4 doc"):
    data = {"name": name}
    if targets:
        data["target_user_ids"] = [str(t) for t in targets]
    return client.post(
        "/api/documents",
        files={"file": (filename, body, "application/pdf")},
        data=data,
        headers=headers,
    )


def test_targeted_documents_are_visible_only_to_targets(client, make_user, auth_headers):
    alice_id = make_user("alice@boletas.cl")
    alice = auth_headers(alice_id)
    bob = auth_headers(make_user("bob@boletas.cl"))
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))

    private = _upload(client, admin, name="Liquidación", targets=[alice_id])
    assert private.status_code == 200, private.text
    assert private.json()["target_user_ids"] == [str(alice_id)]
    public = _upload(client, admin, name="Reglamento interno").json()

    assert {d["name"] for d in client.get("/api/documents", headers=alice).json()} == {
        "Liquidación",
        "Reglamento interno",
    }
    assert [d["name"] for d in client.get("/api/documents", headers=bob).json()] == [
        "Reglamento interno"
    ]
    hidden = client.get(f"/api/documents/{private.json()['id']}/download", headers=bob)
    assert hidden.status_code == 404

    download = client.get(f"/api/documents/{public['id']}/download", headers=bob)
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 doc"
    assert "filename*=UTF-8''contrato.pdf" in download.headers["content-disposition"]


def test_only_admins_upload(client, make_user, auth_headers):
    user = auth_headers(make_user())
    assert _upload(client, user).status_code == 403


def test_upload_validation(client, make_user, auth_headers):
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))
    assert _upload(client, admin, body=b"").status_code == 400
    unknown = "00000000-0000-0000-0000-000000000000"
    assert _upload(client, admin, targets=[unknown]).status_code == 400


def test_deactivated_document_is_hidden_from_users(client, make_user, auth_headers):
    user = auth_headers(make_user())
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))
    doc = _upload(client, admin).json()

    resp = client.patch(f"/api/documents/{doc['id']}", json={"is_active": False}, headers=admin)
    assert resp.status_code == 200
    assert client.get("/api/documents", headers=user).json() == []
    assert len(client.get("/api/documents", headers=admin).json()) == 1


def test_delete_document_removes_file(client, make_user, auth_headers):
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))
    doc = _upload(client, admin).json()

    assert client.delete(f"/api/documents/{doc['id']}", headers=admin).status_code == 204
    assert client.get("/api/documents", headers=admin).json() == []

    from boletas.core.storage import get_storage

    assert get_storage().list_keys(prefix="documents/") == []


def test_document_categories(client, make_user, auth_headers):
    user = auth_headers(make_user())
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))

    created = client.post("/api/document-categories", json={"name": "Contratos"}, headers=admin)
    assert created.status_code == 200
    category_id = created.json()["id"]
    dup = client.post("/api/document-categories", json={"name": "contratos"}, headers=admin)
    assert dup.status_code == 409
    denied = client.post("/api/document-categories", json={"name": "Otros"}, headers=user)
    assert denied.status_code == 403

    doc = client.post(
        "/api/documents",
        files={"file": ("c.pdf", b"%PDF", "application/pdf")},
        data={"name": "Contrato", "category_id": category_id},
        headers=admin,
    ).json()
    assert doc["category_id"] == category_id

    assert client.delete(f"/api/document-categories/{category_id}", headers=admin).status_code == 204
    [listed] = client.get("/api/documents", headers=admin).json()
    assert listed["category_id"] is None


def test_storage_outage_returns_503(client, make_user, auth_headers, monkeypatch):
    from boletas.core.storage import LocalObjectStorage, StorageError

    def broken_put(self, *, key, body):
        raise StorageError(f"Could not store object: {key}")

    monkeypatch.setattr(LocalObjectStorage, "put", broken_put)
    admin = auth_headers(make_user("admin@boletas.cl", role=UserRole.ADMIN))

    resp = _upload(client, admin)
    assert resp.status_code == 503
    assert resp.json() == {"detail": "File storage unavailable"}
