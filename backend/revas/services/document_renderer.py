from __future__ import annotations

from datetime import datetime
from typing import Iterable

from revas import models
from revas.models import DocumentType

TITLE_FOR_DOCUMENT_TYPE = {
    DocumentType.sales_order: "SALES ORDER",
    DocumentType.purchase_order: "PURCHASE ORDER",
}

TERMS_AND_CONDITIONS = [
    "1. Goods are delivered according to the shipping terms stated above.",
    "2. The upfront share of the price is due on signature; the balance on delivery.",
    "3. Quantities may vary by up to 5% at the supplier's option, invoiced pro rata.",
    "4. Title and risk pass to the buyer on delivery at the agreed location.",
    "5. Claims on quality or quantity must be raised within 14 days of delivery.",
    "6. This order is binding once signed by both buyer and supplier.",
]


def _escape_pdf_literal_string(text: str) -> str:
    # PDF literal string escaping for (), \\.
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _latin1(text: str) -> str:
    return str(text).encode("latin-1", errors="replace").decode("latin-1")


def build_text_pdf_bytes(
    *,
    title: str,
    lines: Iterable[str],
    footer_lines: Iterable[str] | None = None,
) -> bytes:
    """Build a minimal deterministic single-page PDF with simple text.

    Notes:
    - No wall-clock timestamps or random IDs.
    - Uses Base14 Helvetica (no embedded fonts).
    - Encodes text as latin-1 with replacement to keep PDF generation dependency-free.
    """

    # A4: 595 x 842 points
    page_w = 595
    page_h = 842

    safe_title = _latin1(title)
    safe_lines = [_latin1(line) for line in lines]
    safe_footer_lines = [_latin1(line) for line in (footer_lines or [])]

    content_lines: list[str] = [
        "BT",
        "/F1 14 Tf",
        f"50 {page_h - 50} Td ({_escape_pdf_literal_string(safe_title)}) Tj",
        "/F1 10 Tf",
    ]

    for idx, line in enumerate(safe_lines):
        step = 22 if idx == 0 else 14
        content_lines.append(f"0 -{step} Td ({_escape_pdf_literal_string(line)}) Tj")

    content_lines.append("ET")

    if safe_footer_lines:
        content_lines.extend(["BT", "/F1 8 Tf", "50 40 Td"])
        for idx, line in enumerate(safe_footer_lines):
            if idx == 0:
                content_lines.append(f"({_escape_pdf_literal_string(line)}) Tj")
            else:
                content_lines.append(f"0 10 Td ({_escape_pdf_literal_string(line)}) Tj")
        content_lines.append("ET")

    stream = ("\n".join(content_lines) + "\n").encode("latin-1")

    parts: list[bytes] = [b"%PDF-1.4\n"]
    offsets: list[int] = [0]  # xref object 0

    def _emit(obj_num: int, body: bytes) -> None:
        offsets.append(sum(len(p) for p in parts))
        parts.append(f"{obj_num} 0 obj\n".encode("ascii"))
        parts.append(body)
        if not body.endswith(b"\n"):
            parts.append(b"\n")
        parts.append(b"endobj\n")

    _emit(1, b"<< /Type /Catalog /Pages 2 0 R >>\n")
    _emit(2, b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>\n")
    page_obj = (
        f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {page_w} {page_h}] "
        "/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>\n"
    ).encode("ascii")
    _emit(3, page_obj)
    _emit(4, b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>\n")
    content_header = f"<< /Length {len(stream)} >>\nstream\n".encode("ascii")
    _emit(5, content_header + stream + b"endstream\n")

    xref_start = sum(len(p) for p in parts)
    parts.append(b"xref\n")
    parts.append(f"0 {len(offsets)}\n".encode("ascii"))
    parts.append(b"0000000000 65535 f \n")
    for off in offsets[1:]:
        parts.append(f"{off:010d} 00000 n \n".encode("ascii"))

    parts.append(b"trailer\n")
    parts.append(f"<< /Size {len(offsets)} /Root 1 0 R >>\n".encode("ascii"))
    parts.append(b"startxref\n")
    parts.append(f"{xref_start}\n".encode("ascii"))
    parts.append(b"%%EOF\n")

    return b"".join(parts)


def _money(value: float | None) -> str:
    return f"{float(value or 0):,.2f}"


def _manager_line(label: str, manager: models.User | None) -> str:
    if manager is None:
        return f"{label}: -"
    return f"{label}: {manager.full_name} <{manager.email}>"


def render_order_document(
    order: models.Order,
    *,
    doc_type: DocumentType,
    invoice_number: str,
    issued_at: datetime,
) -> bytes:
    """Render the sales or purchase order for one side of ``order``."""

    capacity = float(order.capacity or 0)
    price = float(order.price_per_tonne or 0)
    amount = capacity * price
    products = ", ".join(order.product or []) or "-"

    if doc_type is DocumentType.sales_order:
        party_lines = [
            f"Buyer: {order.buyer_name or '-'}",
            f"Buyer location: {order.buyer_location or '-'}",
            _manager_line("Account manager", order.buyer_account_manager),
        ]
    else:
        party_lines = [
            f"Supplier: {order.supplier_name or '-'}",
            f"Supplier location: {order.supplier_location or '-'}",
            _manager_line("Account manager", order.supplier_account_manager),
        ]

    lines = [
        f"Invoice number: {invoice_number}",
        f"Order: #{order.id}",
        f"Date: {issued_at.strftime('%Y-%m-%d')}",
        "",
        *party_lines,
        "",
        f"Product: {products}",
        f"Capacity: {capacity:g} t",
        f"Price per tonne: {_money(price)}",
        f"Payment terms: {order.payment_terms or 0}% upfront",
        f"Shipping: {order.shipping_type or '-'}",
        "",
        f"Line item: {products} | {capacity:g} t x {_money(price)} = {_money(amount)}",
        f"Total amount: {_money(amount)}",
        "",
        "Terms and conditions",
        *TERMS_AND_CONDITIONS,
        "",
        "Buyer signature: ______________________    Date: __________",
        "Supplier signature: ___________________    Date: __________",
    ]

    return build_text_pdf_bytes(
        title=TITLE_FOR_DOCUMENT_TYPE[doc_type],
        lines=lines,
        footer_lines=[f"{invoice_number} - generated by Revas"],
    )
