from conftest import auth_headers, create_user
from revas import models
from revas.models import AccountManagerRole, ClientType


def test_assign_skips_clients_already_managed(client, db_session, marketplace):
    second = create_user(db_session, "b2@example.com", client_type=ClientType.Buyer)
    headers = auth_headers(marketplace.buyer_manager)

    r = client.post(
        "/api/account-managers/me/clients",
        json={"client_ids": [marketplace.buyer.id, second.id, second.id]},
        headers=headers,
    )

    assert r.status_code == 200, r.text
    assert r.json()["added_client_ids"] == [second.id]

    again = client.post(
        "/api/account-managers/me/clients", json={"client_ids": [second.id]}, headers=headers
    )
    assert again.json()["added_client_ids"] == []
    assert again.json()["message"] == "All clients were already assigned"

    page = client.get("/api/account-managers/me/clients", headers=headers).json()
    assert page["total"] == 2
    assert [c["id"] for c in page["clients"]] == sorted([marketplace.buyer.id, second.id])


def test_assign_rejects_wrong_client_type(client, db_session, marketplace):
    r = client.post(
        "/api/account-managers/me/clients",
        json={"client_ids": [marketplace.supplier.id]},
        headers=auth_headers(marketplace.buyer_manager),
    )

    assert r.status_code == 400
    assert r.json()["details"] == [{"client_ids": [marketplace.supplier.id]}]
    assert (
        db_session.query(models.AccountManagerClient)
        .filter_by(manager_id=marketplace.buyer_manager.id, client_id=marketplace.supplier.id)
        .count()
        == 0
    )


def test_assign_rejects_unknown_and_empty(client, marketplace):
    headers = auth_headers(marketplace.supplier_manager)

    r = client.post("/api/account-managers/me/clients", json={"client_ids": [4242]}, headers=headers)
    assert r.status_code == 404

    r = client.post("/api/account-managers/me/clients", json={"client_ids": []}, headers=headers)
    assert r.status_code == 422


def test_clients_cannot_manage_assignments(client, marketplace):
    r = client.get("/api/account-managers/me/clients", headers=auth_headers(marketplace.buyer))
    assert r.status_code == 403


def test_remove_client(client, db_session, marketplace):
    headers = auth_headers(marketplace.supplier_manager)

    r = client.delete(
        f"/api/account-managers/me/clients/{marketplace.supplier.id}", headers=headers
    )
    assert r.status_code == 200

    r = client.delete(
        f"/api/account-managers/me/clients/{marketplace.supplier.id}", headers=headers
    )
    assert r.status_code == 404
    assert client.get("/api/account-managers/me/clients", headers=headers).json()["total"] == 0


def test_register_manager_with_auto_assign(client, db_session, marketplace):
    inactive = create_user(db_session, "gone@example.com", client_type=ClientType.Supplier)
    inactive.active = False
    db_session.commit()

    r = client.post(
        "/api/auth/account-managers/register",
        json={
            "first_name": "Sara",
            "last_name": "Supplier",
            "email": "sara@revas-markets.com",
            "password": "another-password",
            "role": "supplier",
            "auto_assign_existing_clients": True,
        },
    )

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["user"]["account_manager_role"] == "supplier"
    assert body["assigned_client_ids"] == [marketplace.supplier.id]

    manager = db_session.get(models.User, body["user"]["id"])
    assert manager.account_manager_role is AccountManagerRole.supplier
    assert [c.id for c in manager.managed_clients] == [marketplace.supplier.id]


def test_register_manager_without_auto_assign(client):
    r = client.post(
        "/api/auth/account-managers/register",
        json={
            "first_name": "Ada",
            "last_name": "Buyer",
            "email": "ada@revas-markets.com",
            "password": "another-password",
            "role": "buyer",
        },
    )

    assert r.status_code == 201, r.text
    assert r.json()["assigned_client_ids"] == []
