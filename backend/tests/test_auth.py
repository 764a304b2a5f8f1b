from conftest import TEST_PASSWORD, auth_headers, create_user
from revas import models
from revas.core.security import create_access_token, decode_access_token


def _register_client(client, email="bea@acme-plastics.com", **overrides):
    payload = {
        "first_name": "Bea",
        "last_name": "Buyer",
        "email": email,
        "password": "s3cret-password",
        "client_type": "Buyer",
        "company_name": "Acme Plastics",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_client_and_login(client, db_session):
    r = _register_client(client, email="Bea@Acme-Plastics.com")
    assert r.status_code == 201, r.text
    user = r.json()["user"]
    assert user["email"] == "bea@acme-plastics.com"
    assert user["client_type"] == "Buyer"
    assert user["account_manager_role"] is None

    stored = db_session.get(models.User, user["id"])
    assert stored.hashed_password != "s3cret-password"

    r = client.post(
        "/api/auth/token",
        data={"username": "bea@acme-plastics.com", "password": "s3cret-password"},
    )
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    assert r.json()["token_type"] == "bearer"
    assert decode_access_token(token)["sub"] == str(user["id"])

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user["id"]
    assert me.json()["managed_client_ids"] == []


def test_duplicate_email_is_rejected(client):
    assert _register_client(client).status_code == 201

    r = _register_client(client, email="BEA@acme-plastics.com")

    assert r.status_code == 400
    assert r.json()["message"] == "Email already registered"


def test_register_validates_payload(client):
    assert _register_client(client, password="short").status_code == 422
    assert _register_client(client, client_type="Broker").status_code == 422
    assert _register_client(client, email="not-an-email").status_code == 422


def test_wrong_password_is_rejected_and_audited(client, db_session):
    create_user(db_session, "sam@polymer-works.com", role=models.AccountManagerRole.supplier)

    r = client.post(
        "/api/auth/token", data={"username": "sam@polymer-works.com", "password": "nope"}
    )

    assert r.status_code == 401
    assert r.json()["error"] == "UNAUTHORIZED"
    actions = [a.action for a in db_session.query(models.AuditLog).all()]
    assert "auth.login_failed" in actions


def test_inactive_user_cannot_login_or_use_token(client, db_session):
    user = create_user(db_session, "old@polymer-works.com", client_type=models.ClientType.Supplier)
    headers = auth_headers(user)
    user.active = False
    db_session.commit()

    r = client.post(
        "/api/auth/token", data={"username": "old@polymer-works.com", "password": TEST_PASSWORD}
    )
    assert r.status_code == 403
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_me_lists_managed_clients(client, marketplace):
    r = client.get("/api/auth/me", headers=auth_headers(marketplace.buyer_manager))

    assert r.status_code == 200
    body = r.json()
    assert body["account_manager_role"] == "buyer"
    assert body["managed_client_ids"] == [marketplace.buyer.id]


def test_tokens_are_validated(client, marketplace):
    assert client.get("/api/auth/me").status_code == 401
    assert (
        client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    )

    no_user = create_access_token({"sub": "99999"})
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {no_user}"}).status_code == 401

    # Proxies that rename the header are supported.
    token = auth_headers(marketplace.buyer)["Authorization"]
    r = client.get("/api/auth/me", headers={"X-Authorization": token})
    assert r.status_code == 200
