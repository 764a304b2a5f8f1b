from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revas import models
from revas.config import settings
from revas.core.errors import ConflictError
from revas.models import DocumentType

PREFIX_FOR_DOCUMENT_TYPE = {
    DocumentType.sales_order: "SO",
    DocumentType.purchase_order: "PO",
}


@dataclass(frozen=True)
class InvoiceNumber:
    prefix: str
    period: str  # MMYY
    entity: str
    seq: int
    formatted: str


def entity_code(name: str | None) -> str:
    """First three letters of a party name, uppercased and padded with X."""

    letters = re.sub(r"[^A-Za-z]", "", name or "")
    return letters[:3].upper().ljust(3, "X")


def format_invoice_number(*, prefix: str, period: str, entity: str, seq: int) -> str:
    """Format: SO-0325-ACM-001 (sequence resets per prefix, month and entity)."""

    return f"{prefix}-{period}-{entity}-{seq:03d}"


def invoice_entity_name(order: models.Order, doc_type: DocumentType) -> str | None:
    # A sales order is raised against the buyer, a purchase order against the supplier.
    if doc_type is DocumentType.sales_order:
        return order.buyer_name
    return order.supplier_name


def _ensure_scope_row(db: Session, *, prefix: str, period: str, entity: str) -> None:
    dialect_name = db.get_bind().dialect.name
    values = {"prefix": prefix, "period": period, "entity": entity, "last_seq": 0}

    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        exists = db.execute(_scope_select(prefix, period, entity)).first()
        if exists is None:
            try:
                with db.begin_nested():
                    db.add(models.InvoiceSequence(**values))
            except IntegrityError:
                # Another transaction created the scope row first.
                pass
        return

    stmt = (
        dialect_insert(models.InvoiceSequence)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["prefix", "period", "entity"])
    )
    db.execute(stmt)


def _scope_select(prefix: str, period: str, entity: str):
    return select(models.InvoiceSequence.last_seq).where(
        models.InvoiceSequence.prefix == prefix,
        models.InvoiceSequence.period == period,
        models.InvoiceSequence.entity == entity,
    )


def _increment_scope(db: Session, *, prefix: str, period: str, entity: str) -> int:
    # The increment happens in SQL so the row lock taken by the UPDATE, not a
    # stale read, decides the next value.
    db.execute(
        update(models.InvoiceSequence)
        .where(
            models.InvoiceSequence.prefix == prefix,
            models.InvoiceSequence.period == period,
            models.InvoiceSequence.entity == entity,
        )
        .values(last_seq=models.InvoiceSequence.last_seq + 1)
        .execution_options(synchronize_session=False)
    )
    return int(db.execute(_scope_select(prefix, period, entity)).scalar_one())


def _invoice_number_taken(db: Session, formatted: str) -> bool:
    return (
        db.query(models.Document.id).filter(models.Document.invoice_number == formatted).first()
        is not None
    )


def next_invoice_number(
    db: Session,
    *,
    doc_type: DocumentType,
    entity_name: str | None,
    now: datetime | None = None,
    max_retries: int | None = None,
) -> InvoiceNumber:
    """Allocate the next invoice number for (type, month, entity).

    Runs inside the caller's transaction; the allocation is released again if
    that transaction rolls back. A number already used by a document (for
    example one imported by hand) is skipped, and after ``max_retries`` skips
    the request fails as a retryable conflict.
    """

    now = now or models.utc_now()
    prefix = PREFIX_FOR_DOCUMENT_TYPE[doc_type]
    period = now.strftime("%m%y")
    entity = entity_code(entity_name)
    retries = max(1, max_retries or settings.invoice_number_max_retries)

    _ensure_scope_row(db, prefix=prefix, period=period, entity=entity)

    for _ in range(retries):
        seq = _increment_scope(db, prefix=prefix, period=period, entity=entity)
        formatted = format_invoice_number(prefix=prefix, period=period, entity=entity, seq=seq)
        if not _invoice_number_taken(db, formatted):
            return InvoiceNumber(
                prefix=prefix, period=period, entity=entity, seq=seq, formatted=formatted
            )

    raise ConflictError(
        f"Could not allocate an invoice number for {prefix}-{period}-{entity}",
        details=[{"prefix": prefix, "period": period, "entity": entity}],
    )
