from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from revas import models
from revas.core.actors import Actor, require_client
from revas.core.errors import AuthorizationError, NotFoundError, ValidationError
from revas.database import atomic
from revas.models import (
    DOCUMENT_TYPE_FOR_PARTY,
    DocumentStatus,
    DocumentType,
    NotificationType,
    OrderStatus,
    SigningParty,
)
from revas.services.blob_store import BlobStore
from revas.services.documents_service import get_document_for_actor
from revas.services.notifications import fan_out, party_recipients
from revas.services.order_transitions import atomic_transition_order_status, lock_order

logger = logging.getLogger("revas.signing")

SIGNABLE_ORDER_STATUSES = frozenset(
    {OrderStatus.document_phase, OrderStatus.processing, OrderStatus.completed}
)
MAX_SIGNED_FILE_BYTES = 20 * 1024 * 1024


@dataclass
class SignResult:
    document: models.Document
    fully_signed: bool
    notifications: list[models.Notification] = field(default_factory=list)


@dataclass(frozen=True)
class SigningStatus:
    document_id: int
    status: DocumentStatus
    signed_by_buyer: bool
    signed_by_supplier: bool


def _validate_pdf(content: bytes) -> None:
    if not content:
        raise ValidationError("Signed document is empty")
    if len(content) > MAX_SIGNED_FILE_BYTES:
        raise ValidationError("Signed document exceeds the 20 MB limit")
    if not content.lstrip()[:5].startswith(b"%PDF"):
        raise ValidationError("Signed document must be a PDF file")


def _pair_fully_signed(documents: list[models.Document]) -> bool:
    # Closed documents report expired, whatever their signatures say.
    return all(d.status is DocumentStatus.fully_signed for d in documents)


def _stamp(document: models.Document, party: SigningParty, when) -> None:
    if party is SigningParty.buyer:
        document.signed_by_buyer_at = when
    else:
        document.signed_by_supplier_at = when


def upload_signed_document(
    db: Session,
    actor: Actor,
    order_id: int,
    *,
    content: bytes,
    store: BlobStore,
) -> SignResult:
    """Record one client's signature on the order's document pair.

    The signed file is stored first; the signature timestamps, the order's move
    to processing and the resulting notifications then commit together.
    """

    client = require_client(actor)
    party = client.party
    doc_type: DocumentType = DOCUMENT_TYPE_FOR_PARTY[party]

    order = db.get(models.Order, int(order_id))
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if not client.can_sign_as(party, order):
        raise AuthorizationError("Only the order's buyer or supplier can sign its documents")

    _validate_pdf(content)

    own = order.document_of_type(doc_type)
    if own is None:
        raise NotFoundError(f"No {doc_type.value} exists for order {order.id}")
    key = f"orders/{order.id}/{doc_type.value}/signed/{party.value}-{own.invoice_number}.pdf"
    blob = store.put(key, content, "application/pdf")

    with atomic(db):
        order = lock_order(db, order_id)
        if order.status not in SIGNABLE_ORDER_STATUSES:
            raise ValidationError(
                f"Documents can only be signed once the order is in the document phase "
                f"(order is {order.status.value})"
            )

        documents = (
            db.query(models.Document)
            .filter(models.Document.order_id == order.id)
            .populate_existing()
            .all()
        )
        if {d.doc_type for d in documents} != {DocumentType.sales_order, DocumentType.purchase_order}:
            raise ValidationError("Both sales and purchase order documents must exist before signing")

        own = next(d for d in documents if d.doc_type is doc_type)
        closed = [d for d in documents if d.is_closed]
        if closed:
            raise ValidationError(
                "Documents that were declined or expired can no longer be signed",
                details=[
                    {"document_id": d.id, "doc_type": d.doc_type.value, "close_reason": d.close_reason.value}
                    for d in closed
                ],
            )

        was_fully_signed = _pair_fully_signed(documents)
        now = models.utc_now()
        for doc in documents:
            _stamp(doc, party, now)
        if party is SigningParty.buyer:
            own.buyer_signed_url = blob.url
            own.buyer_signed_key = blob.key
        else:
            own.supplier_signed_url = blob.url
            own.supplier_signed_key = blob.key
        db.flush()

        fully_signed = _pair_fully_signed(documents)
        if fully_signed and not was_fully_signed:
            atomic_transition_order_status(
                db=db,
                order_id=order.id,
                to_status=OrderStatus.processing,
                allowed_from_statuses={OrderStatus.document_phase},
            )
            notifications = fan_out(
                db,
                order=order,
                kind=NotificationType.signature_completed,
                actor_id=None,
                recipients=party_recipients(order),
                payload={
                    "kind": "signature_completed",
                    "document_ids": [d.id for d in documents],
                },
            )
        elif fully_signed:
            notifications = []
        else:
            other = party.other
            other_doc = next(d for d in documents if d.doc_type is DOCUMENT_TYPE_FOR_PARTY[other])
            notifications = fan_out(
                db,
                order=order,
                kind=NotificationType.signature_requested,
                actor_id=client.id,
                recipients=[order.client_id_for(other)],
                payload={
                    "kind": "signature_requested",
                    "document_id": other_doc.id,
                    "doc_type": other_doc.doc_type.value,
                    "signed_by": party.value,
                    "awaiting": other.value,
                },
            )

    db.refresh(own)
    logger.info(
        "document_signed",
        extra={
            "order_id": order_id,
            "document_id": own.id,
            "party": party.value,
            "fully_signed": fully_signed,
        },
    )
    return SignResult(document=own, fully_signed=fully_signed, notifications=notifications)


def get_signing_status(db: Session, actor: Actor, document_id: int) -> SigningStatus:
    document = get_document_for_actor(db, actor, document_id)
    return SigningStatus(
        document_id=document.id,
        status=document.status,
        signed_by_buyer=document.signed_by_buyer_at is not None,
        signed_by_supplier=document.signed_by_supplier_at is not None,
    )
