"""Sales/purchase order documents: generation, completion and closure.

Each side's account manager produces its half of the order paperwork. The
order enters the document phase the moment both halves exist; that check and
the transition run in the same transaction as the insert of the second half.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revas import models
from revas.config import settings
from revas.core.actors import (
    AccountManagerActor,
    Actor,
    ClientActor,
    ensure_can_manage,
    require_account_manager,
    require_client,
)
from revas.core.errors import (
    AuthorizationError,
    NotFoundError,
    RateLimited,
    ValidationError,
)
from revas.database import atomic
from revas.models import (
    DocumentCloseReason,
    DocumentGenerationOutcome,
    DocumentStatus,
    DocumentType,
    NotificationType,
    OrderStatus,
    SavedStatus,
    SigningParty,
)
from revas.services.blob_store import BlobStore
from revas.services.document_renderer import render_order_document
from revas.services.invoice_numbering import invoice_entity_name, next_invoice_number
from revas.services.notifications import fan_out, party_recipients
from revas.services.order_transitions import atomic_transition_order_status, lock_order
from revas.services.orders_service import visibility_filter

logger = logging.getLogger("revas.documents")

COMPLETE_DOCUMENT_TYPES = frozenset({DocumentType.sales_order, DocumentType.purchase_order})


@dataclass
class GenerationResult:
    document: models.Document
    is_existing: bool
    documents_complete: bool = False
    notifications: list[models.Notification] = field(default_factory=list)


@dataclass
class CloseResult:
    document: models.Document
    notifications: list[models.Notification] = field(default_factory=list)


def document_key(order_id: int, doc_type: DocumentType, invoice_number: str, *, suffix: str = "") -> str:
    name = f"{invoice_number}{suffix}.pdf"
    return f"orders/{order_id}/{doc_type.value}/{name}"


def recent_generation_count(
    db: Session, *, order_id: int, requested_by_id: int, window_seconds: int | None = None
) -> int:
    window = int(window_seconds or settings.document_rate_limit_window_seconds)
    since = models.utc_now() - timedelta(seconds=window)
    return int(
        db.query(func.count(models.DocumentGeneration.id))
        .filter(models.DocumentGeneration.order_id == order_id)
        .filter(models.DocumentGeneration.requested_by_id == requested_by_id)
        .filter(models.DocumentGeneration.created_at >= since)
        .scalar()
        or 0
    )


def _enforce_rate_limit(db: Session, *, order_id: int, manager: AccountManagerActor) -> None:
    count = recent_generation_count(db, order_id=order_id, requested_by_id=manager.id)
    limit = settings.document_rate_limit_max
    if count >= limit:
        window = settings.document_rate_limit_window_seconds
        raise RateLimited(
            f"Document generation limit reached: {limit} requests per {window // 60} minutes for this order",
            details=[{"order_id": order_id, "limit": limit, "window_seconds": window}],
        )


def _record_generation(
    db: Session,
    *,
    order_id: int,
    manager: AccountManagerActor,
    doc_type: DocumentType,
    outcome: DocumentGenerationOutcome,
) -> None:
    db.add(
        models.DocumentGeneration(
            order_id=order_id,
            requested_by_id=manager.id,
            doc_type=doc_type,
            outcome=outcome,
        )
    )


def _find_document(db: Session, order_id: int, doc_type: DocumentType) -> models.Document | None:
    return (
        db.query(models.Document)
        .filter(models.Document.order_id == order_id)
        .filter(models.Document.doc_type == doc_type)
        .first()
    )


def documents_complete(db: Session, order_id: int) -> bool:
    types = {
        row[0]
        for row in db.query(models.Document.doc_type)
        .filter(models.Document.order_id == order_id)
        .all()
    }
    return COMPLETE_DOCUMENT_TYPES <= types


def _mark_complete_if_ready(
    db: Session, order: models.Order, manager: AccountManagerActor
) -> tuple[bool, list[models.Notification]]:
    """Move the order to the document phase the first time both halves exist."""

    if not documents_complete(db, order.id):
        return False, []

    now = models.utc_now()
    result = atomic_transition_order_status(
        db=db,
        order_id=order.id,
        to_status=OrderStatus.document_phase,
        allowed_from_statuses={OrderStatus.matched},
        updates={"document_generated_at": now},
    )
    if not result.updated:
        # Someone else already completed the pair.
        return True, []

    db.refresh(order)
    docs = db.query(models.Document).filter(models.Document.order_id == order.id).all()
    notifications = fan_out(
        db,
        order=order,
        kind=NotificationType.document_generated,
        actor_id=manager.id,
        recipients=party_recipients(order),
        payload={
            "kind": "document_generated",
            "document_ids": [d.id for d in docs],
            "invoice_numbers": [d.invoice_number for d in docs],
        },
    )
    logger.info(
        "documents_complete",
        extra={"order_id": order.id, "document_ids": [d.id for d in docs]},
    )
    return True, notifications


def _render_and_store(
    store: BlobStore,
    order: models.Order,
    *,
    doc_type: DocumentType,
    invoice_number: str,
    suffix: str = "",
):
    issued_at = models.utc_now()
    pdf = render_order_document(
        order, doc_type=doc_type, invoice_number=invoice_number, issued_at=issued_at
    )
    key = document_key(order.id, doc_type, invoice_number, suffix=suffix)
    return store.put(key, pdf, "application/pdf"), issued_at


def generate_order_document(
    db: Session, actor: Actor, order_id: int, *, store: BlobStore
) -> GenerationResult:
    manager = require_account_manager(actor)
    doc_type = manager.document_type

    try:
        order = lock_order(db, order_id)
        ensure_can_manage(manager, order)
        _enforce_rate_limit(db, order_id=order.id, manager=manager)

        existing = _find_document(db, order.id, doc_type)
        if existing is not None:
            _record_generation(
                db,
                order_id=order.id,
                manager=manager,
                doc_type=doc_type,
                outcome=DocumentGenerationOutcome.existing,
            )
            db.commit()
            return GenerationResult(
                document=existing,
                is_existing=True,
                documents_complete=documents_complete(db, order.id),
            )

        if order.saved_status != SavedStatus.confirmed:
            raise ValidationError(f"Order {order.id} is a draft; confirm it first")
        if order.status != OrderStatus.matched:
            raise ValidationError(
                f"Documents can only be generated for matched orders (order is {order.status.value})"
            )

        invoice = next_invoice_number(
            db, doc_type=doc_type, entity_name=invoice_entity_name(order, doc_type)
        )
        # Upload before insert; a rollback below leaves at most an orphaned blob.
        blob, issued_at = _render_and_store(
            store, order, doc_type=doc_type, invoice_number=invoice.formatted
        )

        document = models.Document(
            order_id=order.id,
            doc_type=doc_type,
            invoice_number=invoice.formatted,
            file_url=blob.url,
            file_key=blob.key,
            file_sha256=blob.sha256,
            generated_by_id=manager.id,
            generated_at=issued_at,
        )
        db.add(document)
        order.document_type = doc_type
        order.doc_url = blob.url
        order.invoice_number = invoice.formatted
        _record_generation(
            db,
            order_id=order.id,
            manager=manager,
            doc_type=doc_type,
            outcome=DocumentGenerationOutcome.created,
        )
        db.flush()

        complete, notifications = _mark_complete_if_ready(db, order, manager)
        db.commit()
    except IntegrityError:
        db.rollback()
        # A concurrent request created the same document first.
        existing = _find_document(db, int(order_id), doc_type)
        if existing is None:
            raise
        return GenerationResult(
            document=existing,
            is_existing=True,
            documents_complete=documents_complete(db, int(order_id)),
        )
    except Exception:
        db.rollback()
        raise

    db.refresh(document)
    logger.info(
        "document_generated",
        extra={
            "order_id": order.id,
            "document_id": document.id,
            "doc_type": doc_type.value,
            "invoice_number": document.invoice_number,
        },
    )
    return GenerationResult(
        document=document,
        is_existing=False,
        documents_complete=complete,
        notifications=notifications,
    )


def _reset_signing_round(db: Session, order_id: int) -> None:
    for doc in db.query(models.Document).filter(models.Document.order_id == order_id).all():
        doc.signed_by_buyer_at = None
        doc.signed_by_supplier_at = None
        doc.buyer_signed_url = None
        doc.buyer_signed_key = None
        doc.supplier_signed_url = None
        doc.supplier_signed_key = None


def regenerate_order_document(
    db: Session, actor: Actor, order_id: int, *, store: BlobStore
) -> GenerationResult:
    """Re-render a document with its existing invoice number.

    Allowed while nobody has signed it, or after it expired or was declined; in
    the latter case the signing round for the whole pair starts over.
    """

    manager = require_account_manager(actor)
    doc_type = manager.document_type

    with atomic(db):
        order = lock_order(db, order_id)
        ensure_can_manage(manager, order)
        _enforce_rate_limit(db, order_id=order.id, manager=manager)
        if order.status not in {OrderStatus.matched, OrderStatus.document_phase}:
            raise ValidationError(
                f"Documents cannot be regenerated once the order is {order.status.value}"
            )

        document = _find_document(db, order.id, doc_type)
        if document is None:
            raise NotFoundError(f"No {doc_type.value} exists for order {order.id}; generate it first")

        status = document.status
        if status not in {DocumentStatus.generated, DocumentStatus.draft, DocumentStatus.expired}:
            raise ValidationError(
                f"A {status.value} document cannot be regenerated",
                details=[{"document_id": document.id, "status": status.value}],
            )

        version = (
            db.query(func.count(models.DocumentGeneration.id))
            .filter(models.DocumentGeneration.order_id == order.id)
            .filter(models.DocumentGeneration.doc_type == doc_type)
            .scalar()
            or 0
        )
        blob, issued_at = _render_and_store(
            store,
            order,
            doc_type=doc_type,
            invoice_number=document.invoice_number,
            suffix=f"-r{int(version) + 1}",
        )

        if status is DocumentStatus.expired:
            _reset_signing_round(db, order.id)
            document.closed_at = None
            document.close_reason = None
            document.closed_by_id = None

        document.file_url = blob.url
        document.file_key = blob.key
        document.file_sha256 = blob.sha256
        document.generated_by_id = manager.id
        document.generated_at = issued_at
        order.document_type = doc_type
        order.doc_url = blob.url
        _record_generation(
            db,
            order_id=order.id,
            manager=manager,
            doc_type=doc_type,
            outcome=DocumentGenerationOutcome.regenerated,
        )

    db.refresh(document)
    logger.info(
        "document_regenerated",
        extra={"order_id": order_id, "document_id": document.id, "doc_type": doc_type.value},
    )
    return GenerationResult(
        document=document,
        is_existing=False,
        documents_complete=documents_complete(db, int(order_id)),
    )


def get_document(db: Session, document_id: int) -> models.Document:
    document = db.get(models.Document, int(document_id))
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    return document


def ensure_can_view_document(actor: Actor, document: models.Document) -> None:
    if not actor.can_view_order(document.order):
        raise AuthorizationError("You do not have access to this document")


def _close_document(
    db: Session,
    document: models.Document,
    *,
    reason: DocumentCloseReason,
    closed_by_id: int,
) -> None:
    if document.is_closed:
        raise ValidationError(f"Document {document.id} is already {document.close_reason.value}")
    if document.status is DocumentStatus.fully_signed:
        raise ValidationError(f"Document {document.id} is fully signed and cannot be closed")
    document.closed_at = models.utc_now()
    document.close_reason = reason
    document.closed_by_id = closed_by_id


def expire_document(
    db: Session, actor: Actor, document_id: int, *, reason: str | None = None
) -> CloseResult:
    manager = require_account_manager(actor)

    with atomic(db):
        document = get_document(db, document_id)
        order = lock_order(db, document.order_id)
        ensure_can_manage(manager, order)
        _close_document(db, document, reason=DocumentCloseReason.expired, closed_by_id=manager.id)
        notifications = fan_out(
            db,
            order=order,
            kind=NotificationType.submission_expired,
            actor_id=manager.id,
            recipients=party_recipients(order),
            payload={
                "kind": "submission_expired",
                "document_id": document.id,
                "doc_type": document.doc_type.value,
                "reason": reason,
            },
        )

    db.refresh(document)
    return CloseResult(document=document, notifications=notifications)


def decline_document(
    db: Session, actor: Actor, document_id: int, *, reason: str | None = None
) -> CloseResult:
    client: ClientActor = require_client(actor)

    with atomic(db):
        document = get_document(db, document_id)
        order = lock_order(db, document.order_id)
        if not client.is_party_to(order) or client.document_type != document.doc_type:
            raise AuthorizationError("You can only decline the document assigned to you")
        _close_document(db, document, reason=DocumentCloseReason.declined, closed_by_id=client.id)

        other_party = client.party.other
        notifications = fan_out(
            db,
            order=order,
            kind=NotificationType.submission_declined,
            actor_id=client.id,
            recipients=[
                order.buyer_account_manager_id,
                order.supplier_account_manager_id,
                order.client_id_for(other_party),
            ],
            payload={
                "kind": "submission_declined",
                "document_id": document.id,
                "doc_type": document.doc_type.value,
                "declined_by": client.party.value,
                "reason": reason,
            },
        )

    db.refresh(document)
    return CloseResult(document=document, notifications=notifications)


def _document_visibility_query(db: Session, actor: Actor):
    q = (
        db.query(models.Document)
        .join(models.Order, models.Order.id == models.Document.order_id)
        .filter(models.Order.saved_status == SavedStatus.confirmed)
    )
    if isinstance(actor, ClientActor):
        party_col = (
            models.Order.buyer_id if actor.party is SigningParty.buyer else models.Order.supplier_id
        )
        return q.filter(party_col == actor.id)

    return q.filter(visibility_filter(actor))


def list_client_documents(
    db: Session,
    actor: Actor,
    *,
    status: DocumentStatus | None = None,
    doc_type: DocumentType | None = None,
    order_id: int | None = None,
) -> list[models.Document]:
    q = _document_visibility_query(db, actor)
    if status is DocumentStatus.pending_signatures:
        q = q.filter(
            models.Document.status.in_(
                [DocumentStatus.generated.value, DocumentStatus.partially_signed.value]
            )
        )
    elif status is not None:
        q = q.filter(models.Document.status == status.value)
    if doc_type is not None:
        q = q.filter(models.Document.doc_type == doc_type)
    if order_id is not None:
        q = q.filter(models.Document.order_id == int(order_id))
    return q.order_by(models.Document.created_at.desc(), models.Document.id.desc()).all()


def list_signed_documents(db: Session, actor: Actor) -> list[models.Document]:
    q = _document_visibility_query(db, actor)
    if isinstance(actor, ClientActor):
        if actor.party is SigningParty.buyer:
            q = q.filter(models.Document.buyer_signed_url.is_not(None))
        else:
            q = q.filter(models.Document.supplier_signed_url.is_not(None))
    else:
        q = q.filter(
            models.Document.status.in_(
                [DocumentStatus.partially_signed.value, DocumentStatus.fully_signed.value]
            )
        )
    return q.order_by(models.Document.updated_at.desc(), models.Document.id.desc()).all()


def get_document_for_actor(db: Session, actor: Actor, document_id: int) -> models.Document:
    document = get_document(db, document_id)
    ensure_can_view_document(actor, document)
    return document


def document_download_url(
    db: Session,
    actor: Actor,
    document_id: int,
    *,
    variant: str,
    store: BlobStore,
    ttl_seconds: int | None = None,
) -> tuple[models.Document, str, int]:
    """Mint a short-lived URL for the original or one party's signed copy."""

    document = get_document_for_actor(db, actor, document_id)
    if variant == "original":
        key = document.file_key
    elif variant == "buyer_signed":
        key = document.buyer_signed_key
    elif variant == "supplier_signed":
        key = document.supplier_signed_key
    else:
        raise ValidationError(f"Unknown download variant: {variant}")

    if not key:
        raise NotFoundError(f"Document {document.id} has no {variant} file")

    ttl = int(ttl_seconds or settings.signed_url_ttl_seconds)
    return document, store.signed_url(key, ttl), ttl
