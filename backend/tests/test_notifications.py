import pytest

from conftest import auth_headers, create_order
from revas import models
from revas.models import NotificationType, OrderStatus
from revas.services.notifications import distinct_recipients, fan_out, kind_for_status


def test_distinct_recipients_drops_actor_duplicates_and_blanks():
    assert distinct_recipients([3, None, 1, 3, 2, 1], exclude=2) == [3, 1]
    assert distinct_recipients([None, None]) == []


def test_kind_for_status():
    assert kind_for_status(OrderStatus.processing) is NotificationType.order_processing
    assert kind_for_status(OrderStatus.completed) is NotificationType.order_completed
    assert kind_for_status(OrderStatus.matched) is NotificationType.status_changed


def test_fan_out_rejects_mismatched_payload(client, db_session, marketplace):
    order = db_session.get(models.Order, create_order(client, marketplace)["id"])

    with pytest.raises(ValueError):
        fan_out(
            db_session,
            order=order,
            kind=NotificationType.order_created,
            actor_id=None,
            recipients=[marketplace.buyer.id],
            payload={"kind": "status_changed", "old_status": "matched", "new_status": "processing"},
        )


def test_list_and_mark_read(client, marketplace):
    create_order(client, marketplace)
    create_order(client, marketplace)
    headers = auth_headers(marketplace.buyer)

    page = client.get("/api/notifications", headers=headers).json()
    assert page["total"] == 2
    assert page["unread_count"] == 2
    first = page["notifications"][0]
    assert first["type"] == "order_created"
    assert first["metadata"]["kind"] == "order_created"
    assert first["metadata"]["created_by_id"] == marketplace.buyer_manager.id

    r = client.patch(f"/api/notifications/{first['id']}/read", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["notification"]["is_read"] is True
    assert r.json()["notification"]["read_at"] is not None

    unread = client.get("/api/notifications", params={"is_read": False}, headers=headers).json()
    assert unread["total"] == 1
    assert unread["unread_count"] == 1

    by_type = client.get(
        "/api/notifications", params={"type": "status_changed"}, headers=headers
    ).json()
    assert by_type["total"] == 0


def test_cannot_mark_someone_elses_notification(client, db_session, marketplace):
    create_order(client, marketplace)
    theirs = (
        db_session.query(models.Notification)
        .filter(models.Notification.user_id == marketplace.supplier.id)
        .first()
    )

    r = client.patch(f"/api/notifications/{theirs.id}/read", headers=auth_headers(marketplace.buyer))
    assert r.status_code == 403

    r = client.patch("/api/notifications/999/read", headers=auth_headers(marketplace.buyer))
    assert r.status_code == 404


def test_mark_all_read_only_touches_own(client, db_session, marketplace):
    create_order(client, marketplace)
    create_order(client, marketplace)

    r = client.patch("/api/notifications/read-all", headers=auth_headers(marketplace.supplier))
    assert r.status_code == 200
    assert r.json()["updated"] == 2

    page = client.get("/api/notifications", headers=auth_headers(marketplace.supplier)).json()
    assert page["unread_count"] == 0
    buyer_page = client.get("/api/notifications", headers=auth_headers(marketplace.buyer)).json()
    assert buyer_page["unread_count"] == 2


def test_status_update_notifies_everyone_but_actor(client, db_session, marketplace):
    order = create_order(client, marketplace)
    client.post(
        f"/api/orders/{order['id']}/approve", headers=auth_headers(marketplace.supplier_manager)
    )
    for manager in (marketplace.buyer_manager, marketplace.supplier_manager):
        client.post(f"/api/documents/orders/{order['id']}/generate", headers=auth_headers(manager))
    for party in (marketplace.buyer, marketplace.supplier):
        client.post(
            f"/api/documents/orders/{order['id']}/sign",
            files={"file": ("s.pdf", b"%PDF-1.7\n%%EOF\n", "application/pdf")},
            headers=auth_headers(party),
        )

    r = client.patch(
        f"/api/orders/{order['id']}/status",
        json={"status": "completed"},
        headers=auth_headers(marketplace.buyer_manager),
    )

    assert r.status_code == 200, r.text
    assert set(r.json()["notified_user_ids"]) == {
        marketplace.supplier_manager.id,
        marketplace.buyer.id,
        marketplace.supplier.id,
    }
    rows = (
        db_session.query(models.Notification)
        .filter(models.Notification.type == NotificationType.order_completed)
        .all()
    )
    assert len(rows) == 3
    assert rows[0].message == f"Order #{order['id']} has been completed."


def test_delete_own_notification_only(client, db_session, marketplace):
    create_order(client, marketplace)
    mine = (
        db_session.query(models.Notification)
        .filter(models.Notification.user_id == marketplace.buyer.id)
        .one()
    )

    r = client.delete(f"/api/notifications/{mine.id}", headers=auth_headers(marketplace.supplier))
    assert r.status_code == 403
    assert db_session.get(models.Notification, mine.id) is not None

    r = client.delete(f"/api/notifications/{mine.id}", headers=auth_headers(marketplace.buyer))
    assert r.status_code == 200, r.text
    assert r.json()["message"] == "Notification deleted"

    db_session.expire_all()
    assert db_session.get(models.Notification, mine.id) is None
    assert client.get("/api/notifications", headers=auth_headers(marketplace.buyer)).json()["total"] == 0
    # The other recipients keep their copies.
    assert (
        db_session.query(models.Notification)
        .filter(models.Notification.user_id == marketplace.supplier.id)
        .count()
        == 1
    )

    r = client.delete(f"/api/notifications/{mine.id}", headers=auth_headers(marketplace.buyer))
    assert r.status_code == 404
