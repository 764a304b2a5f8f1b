from datetime import datetime, timezone

from conftest import (
    auth_headers,
    create_matched_order,
    create_order_in_document_phase,
    pdf_upload,
)
from revas import models
from revas.models import DocumentType, NotificationType, OrderStatus, SigningParty
from revas.models.signing import (
    FullySigned,
    PartiallySigned,
    Unsigned,
    signing_rank,
    signing_state_from,
)


def _sign(client, order_id: int, user, files=None):
    return client.post(
        f"/api/documents/orders/{order_id}/sign",
        files=files or pdf_upload(),
        headers=auth_headers(user),
    )


def _documents(db, order_id: int) -> dict[DocumentType, models.Document]:
    db.expire_all()
    rows = db.query(models.Document).filter(models.Document.order_id == order_id).all()
    return {d.doc_type: d for d in rows}


def test_signing_state_variants():
    now = datetime.now(timezone.utc)
    assert signing_state_from(None, None) == Unsigned()
    assert signing_state_from(now, None) == PartiallySigned(by=SigningParty.buyer)
    assert signing_state_from(None, now) == PartiallySigned(by=SigningParty.supplier)
    assert signing_state_from(now, now) == FullySigned()
    assert signing_rank(Unsigned()) < signing_rank(PartiallySigned(by=SigningParty.buyer))
    assert signing_rank(PartiallySigned(by=SigningParty.buyer)) < signing_rank(FullySigned())


def test_first_signature_marks_pair_partially_signed(client, db_session, marketplace, store):
    order = create_order_in_document_phase(client, marketplace)

    r = _sign(client, order["id"], marketplace.buyer)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["fully_signed"] is False
    assert body["document"]["doc_type"] == "sales_order"
    assert body["document"]["status"] == "partially_signed"
    assert body["notified_user_ids"] == [marketplace.supplier.id]

    docs = _documents(db_session, order["id"])
    assert all(d.signed_by_buyer_at is not None for d in docs.values())
    assert all(d.signed_by_supplier_at is None for d in docs.values())
    assert docs[DocumentType.sales_order].buyer_signed_key is not None
    assert (store.root / docs[DocumentType.sales_order].buyer_signed_key).is_file()

    requested = (
        db_session.query(models.Notification)
        .filter(models.Notification.type == NotificationType.signature_requested)
        .one()
    )
    assert requested.user_id == marketplace.supplier.id
    assert requested.payload["document_id"] == docs[DocumentType.purchase_order].id
    assert requested.payload["awaiting"] == "supplier"

    assert db_session.get(models.Order, order["id"]).status is OrderStatus.document_phase


def test_second_signature_completes_pair_and_starts_processing(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    _sign(client, order["id"], marketplace.buyer)

    r = _sign(client, order["id"], marketplace.supplier)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["fully_signed"] is True
    assert body["document"]["status"] == "fully_signed"
    assert set(body["notified_user_ids"]) == {marketplace.buyer.id, marketplace.supplier.id}

    docs = _documents(db_session, order["id"])
    assert all(d.status is models.DocumentStatus.fully_signed for d in docs.values())
    assert db_session.get(models.Order, order["id"]).status is OrderStatus.processing

    completed = (
        db_session.query(models.Notification)
        .filter(models.Notification.type == NotificationType.signature_completed)
        .all()
    )
    assert len(completed) == 2
    assert all(n.triggered_by_id is None for n in completed)


def test_signing_never_moves_backwards(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    _sign(client, order["id"], marketplace.supplier)
    _sign(client, order["id"], marketplace.buyer)
    before = db_session.query(models.Notification).count()

    r = _sign(client, order["id"], marketplace.buyer)

    assert r.status_code == 200
    assert r.json()["fully_signed"] is True
    assert r.json()["notified_user_ids"] == []
    assert db_session.query(models.Notification).count() == before
    docs = _documents(db_session, order["id"])
    assert all(d.status is models.DocumentStatus.fully_signed for d in docs.values())
    assert db_session.get(models.Order, order["id"]).status is OrderStatus.processing


def test_signing_status_matches_document_status(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    _sign(client, order["id"], marketplace.supplier)
    docs = _documents(db_session, order["id"])

    for doc in docs.values():
        r = client.get(
            f"/api/documents/{doc.id}/signing-status", headers=auth_headers(marketplace.buyer)
        )
        assert r.status_code == 200
        status = r.json()
        assert status["status"] == "partially_signed"
        assert status["signed_by_buyer"] is False
        assert status["signed_by_supplier"] is True


def test_signed_documents_listing(client, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    _sign(client, order["id"], marketplace.buyer)

    mine = client.get("/api/documents/signed", headers=auth_headers(marketplace.buyer)).json()
    assert [d["doc_type"] for d in mine["documents"]] == ["sales_order"]

    theirs = client.get("/api/documents/signed", headers=auth_headers(marketplace.supplier)).json()
    assert theirs["total"] == 0

    managed = client.get(
        "/api/documents/signed", headers=auth_headers(marketplace.buyer_manager)
    ).json()
    assert managed["total"] == 2


def test_signed_copy_download(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    _sign(client, order["id"], marketplace.buyer)
    so = _documents(db_session, order["id"])[DocumentType.sales_order]

    r = client.get(
        f"/api/documents/{so.id}/download-url",
        params={"variant": "buyer_signed"},
        headers=auth_headers(marketplace.supplier_manager),
    )

    assert r.status_code == 200, r.text
    assert client.get(r.json()["url"]).content.startswith(b"%PDF")


def test_non_pdf_upload_is_rejected(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)

    r = _sign(
        client,
        order["id"],
        marketplace.buyer,
        files={"file": ("notes.txt", b"not a pdf", "text/plain")},
    )

    assert r.status_code == 400
    docs = _documents(db_session, order["id"])
    assert all(d.signed_by_buyer_at is None for d in docs.values())


def test_account_manager_cannot_sign(client, marketplace):
    order = create_order_in_document_phase(client, marketplace)

    r = _sign(client, order["id"], marketplace.buyer_manager)

    assert r.status_code == 403


def test_signing_requires_document_phase(client, marketplace):
    order = create_matched_order(client, marketplace)
    client.post(
        f"/api/documents/orders/{order['id']}/generate",
        headers=auth_headers(marketplace.buyer_manager),
    )

    r = _sign(client, order["id"], marketplace.buyer)

    assert r.status_code == 400


def test_declined_document_blocks_the_counterpart_signature(client, db_session, marketplace):
    order = create_order_in_document_phase(client, marketplace)
    assert _sign(client, order["id"], marketplace.buyer).status_code == 200
    so = _documents(db_session, order["id"])[DocumentType.sales_order]
    declined = client.post(f"/api/documents/{so.id}/decline", headers=auth_headers(marketplace.buyer))
    assert declined.status_code == 200, declined.text
    before = db_session.query(models.Notification).count()

    r = _sign(client, order["id"], marketplace.supplier)

    assert r.status_code == 400
    assert r.json()["details"][0]["document_id"] == so.id
    assert r.json()["details"][0]["close_reason"] == "declined"
    docs = _documents(db_session, order["id"])
    assert docs[DocumentType.sales_order].status is models.DocumentStatus.expired
    assert all(d.signed_by_supplier_at is None for d in docs.values())
    assert db_session.get(models.Order, order["id"]).status is OrderStatus.document_phase
    assert db_session.query(models.Notification).count() == before
