from datetime import datetime, timezone

from revas import models
from revas.config import settings
from revas.models import DocumentType
from revas.services import mailer
from revas.services.document_renderer import build_text_pdf_bytes, render_order_document


def _order() -> models.Order:
    manager = models.User(
        id=1, email="ana@revas-markets.com", first_name="Ana", last_name="Lopes", hashed_password="h"
    )
    order = models.Order(
        id=42,
        product=["HDPE regrind"],
        capacity=20,
        price_per_tonne=450.0,
        payment_terms=30,
        shipping_type="FOB",
        buyer_name="Acme (EU) Plastics",
        buyer_location="Rotterdam",
        supplier_name="Polymer Works",
        created_by_id=1,
    )
    order.buyer_account_manager = manager
    return order


def test_pdf_is_deterministic_and_well_formed():
    a = build_text_pdf_bytes(title="T", lines=["one", "two"], footer_lines=["f"])
    b = build_text_pdf_bytes(title="T", lines=["one", "two"], footer_lines=["f"])

    assert a == b
    assert a.startswith(b"%PDF-1.4")
    assert a.rstrip().endswith(b"%%EOF")
    assert b"/BaseFont /Helvetica" in a


def test_sales_order_contents():
    issued = datetime(2025, 3, 14, tzinfo=timezone.utc)
    pdf = render_order_document(
        _order(), doc_type=DocumentType.sales_order, invoice_number="SO-0325-ACM-001", issued_at=issued
    )

    assert b"(SALES ORDER)" in pdf
    assert b"Invoice number: SO-0325-ACM-001" in pdf
    assert b"Date: 2025-03-14" in pdf
    # Parentheses in names are escaped for PDF literal strings.
    assert b"Buyer: Acme \\(EU\\) Plastics" in pdf
    assert b"Account manager: Ana Lopes <ana@revas-markets.com>" in pdf
    assert b"Total amount: 9,000.00" in pdf
    assert b"Supplier:" not in pdf


def test_purchase_order_uses_supplier_side():
    issued = datetime(2025, 3, 14, tzinfo=timezone.utc)
    pdf = render_order_document(
        _order(), doc_type=DocumentType.purchase_order, invoice_number="PO-0325-POL-001", issued_at=issued
    )

    assert b"(PURCHASE ORDER)" in pdf
    assert b"Supplier: Polymer Works" in pdf
    assert b"Account manager: -" in pdf


def test_email_is_skipped_when_disabled():
    result = mailer.send_email(to="bea@acme-plastics.com", subject="s", body="b", idempotency_key="n:1")

    assert result.status == "skipped"
    assert result.ok
    assert result.provider_message_id == mailer.send_email(
        to="bea@acme-plastics.com", subject="s", body="b", idempotency_key="n:1"
    ).provider_message_id


def test_email_transport_failure_is_reported(monkeypatch):
    class _FailingSMTP:
        def __init__(self, *args, **kwargs):
            raise OSError("connection refused")

    monkeypatch.setattr(settings, "email_enabled", True)
    monkeypatch.setattr(settings, "smtp_host", "smtp.invalid")
    monkeypatch.setattr(mailer.smtplib, "SMTP", _FailingSMTP)

    result = mailer.send_email(to="bea@acme-plastics.com", subject="s", body="b")

    assert result.status == "failed"
    assert not result.ok
    assert "connection refused" in result.error
