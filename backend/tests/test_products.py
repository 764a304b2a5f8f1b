from conftest import auth_headers, create_user
from revas import models
from revas.services import products as products_service
from revas.services.mailer import SendResult


def _listing(**overrides) -> dict:
    payload = {
        "company_name": "Acme Plastics",
        "product": "PET washed flakes",
        "capacity": 1000,
        "price_per_tonne": 500.5,
        "location": "Rotterdam",
    }
    payload.update(overrides)
    return payload


def _new_client(**overrides) -> dict:
    payload = {
        "first_name": "Nia",
        "last_name": "Okafor",
        "email": "nia@lagos-polymers.com",
        **_listing(company_name="Lagos Polymers", location="Lagos"),
    }
    payload.update(overrides)
    return payload


def test_client_registers_one_product(client, db_session, marketplace):
    r = client.post("/api/products", json=_listing(), headers=auth_headers(marketplace.buyer))

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "Product registered successfully"
    assert body["product"]["user_id"] == marketplace.buyer.id
    assert body["product"]["capacity"] == 1000
    assert db_session.query(models.AuditLog).filter_by(action="product.registered").count() == 1

    again = client.post("/api/products", json=_listing(), headers=auth_headers(marketplace.buyer))
    assert again.status_code == 400
    assert again.json()["message"] == "Product already registered"
    assert db_session.query(models.Product).count() == 1


def test_account_manager_cannot_register_own_product(client, marketplace):
    r = client.post("/api/products", json=_listing(), headers=auth_headers(marketplace.buyer_manager))
    assert r.status_code == 403


def test_product_payload_is_validated(client, marketplace):
    r = client.post(
        "/api/products", json=_listing(capacity=0), headers=auth_headers(marketplace.buyer)
    )
    assert r.status_code == 422

    r = client.post(
        "/api/products", json=_listing(location=""), headers=auth_headers(marketplace.buyer)
    )
    assert r.status_code == 422


def test_list_products_filters_by_company_name(client, db_session, marketplace):
    client.post("/api/products", json=_listing(), headers=auth_headers(marketplace.buyer))
    client.post(
        "/api/products",
        json=_listing(company_name="Polymer Works", product="HDPE regrind"),
        headers=auth_headers(marketplace.supplier),
    )
    extra = create_user(db_session, "ops@baltic-resins.com", client_type=models.ClientType.Supplier)
    client.post(
        "/api/products",
        json=_listing(company_name="Baltic Resins", product="LDPE film"),
        headers=auth_headers(extra),
    )
    headers = auth_headers(marketplace.supplier_manager)

    everything = client.get("/api/products", headers=headers).json()
    assert everything["total"] == 3
    assert [p["company_name"] for p in everything["products"]] == [
        "Acme Plastics",
        "Baltic Resins",
        "Polymer Works",
    ]

    matched = client.get("/api/products", params={"company_name": "polymer"}, headers=headers).json()
    assert [p["product"] for p in matched["products"]] == ["HDPE regrind"]

    # Wildcards in the search term are matched literally.
    wildcard = client.get("/api/products", params={"company_name": "%"}, headers=headers).json()
    assert wildcard["total"] == 0

    paged = client.get("/api/products", params={"limit": 2, "page": 2}, headers=headers).json()
    assert paged["total_pages"] == 2
    assert [p["company_name"] for p in paged["products"]] == ["Polymer Works"]


def test_list_products_requires_authentication(client):
    assert client.get("/api/products").status_code == 401


def test_manager_creates_client_with_product(client, db_session, marketplace, monkeypatch):
    sent = []

    def _capture(**kwargs):
        sent.append(kwargs)
        return SendResult(status="sent", provider_message_id="<m@revas>")

    monkeypatch.setattr(products_service, "send_email", _capture)

    r = client.post(
        "/api/products/clients",
        json=_new_client(),
        headers=auth_headers(marketplace.supplier_manager),
    )

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["email_status"] == "sent"
    assert body["user"]["client_type"] == "Supplier"
    assert body["user"]["company_name"] == "Lagos Polymers"
    assert body["product"]["user_id"] == body["user"]["id"]
    assert "password" not in r.text.lower()

    link = db_session.get(
        models.AccountManagerClient, (marketplace.supplier_manager.id, body["user"]["id"])
    )
    assert link is not None

    assert len(sent) == 1
    assert sent[0]["to"] == "nia@lagos-polymers.com"
    password = next(
        line.split(": ", 1)[1]
        for line in sent[0]["body"].splitlines()
        if line.startswith("Temporary password: ")
    )
    login = client.post(
        "/api/auth/token", data={"username": "nia@lagos-polymers.com", "password": password}
    )
    assert login.status_code == 200, login.text


def test_client_creation_survives_email_failure(client, db_session, marketplace, monkeypatch):
    monkeypatch.setattr(
        products_service,
        "send_email",
        lambda **kwargs: SendResult(status="failed", error="smtp down"),
    )

    r = client.post(
        "/api/products/clients",
        json=_new_client(),
        headers=auth_headers(marketplace.buyer_manager),
    )

    assert r.status_code == 201, r.text
    assert r.json()["email_status"] == "failed"
    assert r.json()["user"]["client_type"] == "Buyer"
    assert db_session.query(models.Product).count() == 1


def test_client_creation_rejects_duplicates_and_clients(client, db_session, marketplace):
    create_user(db_session, "nia@lagos-polymers.com", client_type=models.ClientType.Buyer)
    duplicate = client.post(
        "/api/products/clients",
        json=_new_client(email="NIA@lagos-polymers.com"),
        headers=auth_headers(marketplace.buyer_manager),
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Email already registered"

    forbidden = client.post(
        "/api/products/clients",
        json=_new_client(),
        headers=auth_headers(marketplace.buyer),
    )
    assert forbidden.status_code == 403
    assert db_session.query(models.Product).count() == 0
