import json

from sqlalchemy.exc import SQLAlchemyError

from conftest import auth_headers, create_order
from revas import models
from revas.services.audit import audit_event
from revas.services.dev_seed import DEV_USERS, seed_dev_users


def test_healthcheck(client):
    for path in ("/health", "/healthz"):
        r = client.get(path)
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"


def test_error_responses_carry_request_id(client, marketplace):
    r = client.get(
        "/api/orders/12345",
        headers={**auth_headers(marketplace.buyer_manager), "X-Request-ID": "req-abc"},
    )

    assert r.status_code == 404
    assert r.headers["X-Request-ID"] == "req-abc"
    body = r.json()
    assert body["request_id"] == "req-abc"
    assert body["retryable"] is False
    assert body["details"] == []


def test_mutations_are_audited(client, db_session, marketplace):
    order = create_order(client, marketplace)

    rows = db_session.query(models.AuditLog).filter(models.AuditLog.action == "order.created").all()
    assert len(rows) == 1
    assert rows[0].order_id == order["id"]
    assert rows[0].user_id == marketplace.buyer_manager.id
    payload = json.loads(rows[0].payload_json)
    assert sorted(payload["notified_user_ids"]) == sorted(
        [marketplace.supplier_manager.id, marketplace.buyer.id, marketplace.supplier.id]
    )


def test_audit_event_idempotency(db_session):
    first = audit_event("order.created", None, {"a": 1}, db=db_session, idempotency_key="k-1")
    second = audit_event("order.created", None, {"a": 2}, db=db_session, idempotency_key="k-1")

    assert first is not None
    assert first == second
    assert db_session.query(models.AuditLog).count() == 1


def test_audit_event_swallows_db_errors(db_session, monkeypatch):
    def _boom():
        raise SQLAlchemyError("db down")

    monkeypatch.setattr(db_session, "commit", _boom)

    assert audit_event("order.created", None, {}, db=db_session) is None


def test_seed_dev_users_is_idempotent(db_session):
    created = seed_dev_users(db_session, password="seed-password")
    db_session.commit()
    assert [was_created for _, was_created in created] == [True] * len(DEV_USERS)

    again = seed_dev_users(db_session, password="seed-password")
    db_session.commit()
    assert not any(was_created for _, was_created in again)

    assert db_session.query(models.User).count() == len(DEV_USERS)
    assert db_session.query(models.AccountManagerClient).count() == 2


def test_seeded_users_can_trade(client, db_session):
    seed_dev_users(db_session, password="seed-password")
    db_session.commit()

    token = client.post(
        "/api/auth/token", data={"username": "am.buyer@revas.local", "password": "seed-password"}
    ).json()["access_token"]
    buyer = db_session.query(models.User).filter_by(email="buyer@revas.local").one()
    supplier = db_session.query(models.User).filter_by(email="supplier@revas.local").one()

    r = client.post(
        "/api/orders",
        json={
            "buyer_id": buyer.id,
            "supplier_id": supplier.id,
            "product": ["LDPE film"],
            "capacity": 5,
            "price_per_tonne": 300,
            "payment_terms": 20,
            "shipping_type": "CIF",
            "buyer_name": "Acme Recycling",
            "supplier_name": "Polymer Works",
        },
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 201, r.text
