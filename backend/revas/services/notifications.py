"""Notification fan-out.

Notifications are written inside the caller's transaction so they commit or
roll back together with the state change that produced them. Email copies are
sent only after that commit, and only on a best-effort basis.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from pydantic import BaseModel
from sqlalchemy.orm import Session

from revas import models
from revas.core.errors import AuthorizationError, NotFoundError
from revas.models import NotificationType, OrderStatus
from revas.schemas.notifications import NotificationPayload, notification_payload_adapter
from revas.services.mailer import send_email

logger = logging.getLogger("revas.notifications")

_KIND_FOR_STATUS = {
    OrderStatus.processing: NotificationType.order_processing,
    OrderStatus.completed: NotificationType.order_completed,
}


def kind_for_status(new_status: OrderStatus) -> NotificationType:
    return _KIND_FOR_STATUS.get(new_status, NotificationType.status_changed)


def distinct_recipients(recipients: Iterable[int | None], *, exclude: int | None = None) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for uid in recipients:
        if uid is None:
            continue
        uid = int(uid)
        if uid == exclude or uid in seen:
            continue
        seen.add(uid)
        ordered.append(uid)
    return ordered


def order_created_recipients(order: models.Order, counterpart_manager_id: int | None) -> list[int | None]:
    return [counterpart_manager_id, order.buyer_id, order.supplier_id]


def status_change_recipients(order: models.Order) -> list[int | None]:
    return [
        order.buyer_account_manager_id,
        order.supplier_account_manager_id,
        order.buyer_id,
        order.supplier_id,
    ]


def party_recipients(order: models.Order) -> list[int | None]:
    return [order.buyer_id, order.supplier_id]


def render_message(order: models.Order, payload: BaseModel) -> str:
    ref = f"Order #{order.id}"
    kind = payload.kind
    if kind == NotificationType.order_created.value:
        products = ", ".join(order.product or []) or "unspecified product"
        return f"{ref} has been created for {products} and is awaiting approval."
    if kind == NotificationType.status_changed.value:
        return f"{ref} status changed from {payload.old_status} to {payload.new_status}."
    if kind == NotificationType.order_processing.value:
        return f"{ref} is now processing."
    if kind == NotificationType.order_completed.value:
        return f"{ref} has been completed."
    if kind == NotificationType.document_generated.value:
        return f"Documents for {ref} have been generated. Please review and sign."
    if kind == NotificationType.signature_requested.value:
        return f"The {payload.signed_by} has signed the documents for {ref}. Your signature is required."
    if kind == NotificationType.signature_completed.value:
        return f"All parties have signed the documents for {ref}."
    if kind == NotificationType.submission_declined.value:
        doc = payload.doc_type.replace("_", " ")
        return f"The {payload.declined_by} declined the {doc} for {ref}."
    if kind == NotificationType.submission_expired.value:
        doc = payload.doc_type.replace("_", " ")
        return f"The {doc} for {ref} has expired."
    raise ValueError(f"Unhandled notification kind: {kind}")


def fan_out(
    db: Session,
    *,
    order: models.Order,
    kind: NotificationType,
    actor_id: int | None,
    recipients: Sequence[int | None],
    payload: NotificationPayload | dict[str, Any],
) -> list[models.Notification]:
    """Insert one notification per distinct recipient; flushes, never commits."""

    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    parsed = notification_payload_adapter.validate_python(payload)
    if parsed.kind != kind.value:
        raise ValueError(f"Payload kind {parsed.kind!r} does not match notification type {kind.value!r}")

    message = render_message(order, parsed)
    stored = parsed.model_dump(mode="json")

    rows: list[models.Notification] = []
    for user_id in distinct_recipients(recipients, exclude=actor_id):
        row = models.Notification(
            user_id=user_id,
            order_id=order.id,
            type=kind,
            message=message,
            payload=stored,
            is_read=False,
            triggered_by_id=actor_id,
        )
        db.add(row)
        rows.append(row)

    db.flush()
    return rows


def deliver_notification_emails(db: Session, notifications: Sequence[models.Notification]) -> int:
    """Email committed notifications to their recipients. Returns how many were sent."""

    if not notifications:
        return 0

    user_ids = {n.user_id for n in notifications}
    emails = dict(
        db.query(models.User.id, models.User.email).filter(models.User.id.in_(user_ids)).all()
    )

    sent = 0
    for notification in notifications:
        address = emails.get(notification.user_id)
        if not address:
            continue
        result = send_email(
            to=address,
            subject=f"Revas: {notification.type.value.replace('_', ' ')}",
            body=notification.message,
            idempotency_key=f"notification:{notification.id}",
        )
        if result.status == "sent":
            sent += 1
        elif not result.ok:
            logger.warning(
                "notification_email_failed",
                extra={
                    "notification_id": notification.id,
                    "user_id": notification.user_id,
                    "error": result.error,
                },
            )
    return sent


def list_notifications(
    db: Session,
    user_id: int,
    *,
    is_read: bool | None = None,
    kind: NotificationType | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[models.Notification], int, int]:
    """Return (page of notifications, total matching, unread count for the user)."""

    q = db.query(models.Notification).filter(models.Notification.user_id == int(user_id))
    if is_read is not None:
        q = q.filter(models.Notification.is_read.is_(is_read))
    if kind is not None:
        q = q.filter(models.Notification.type == kind)

    total = q.count()
    rows = (
        q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == int(user_id))
        .filter(models.Notification.is_read.is_(False))
        .count()
    )
    return rows, int(total), int(unread)


def mark_read(db: Session, user_id: int, notification_id: int) -> models.Notification:
    notification = db.get(models.Notification, int(notification_id))
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.user_id != int(user_id):
        raise AuthorizationError("You can only update your own notifications")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = models.utc_now()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    updated = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == int(user_id))
        .filter(models.Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": models.utc_now()}, synchronize_session=False)
    )
    db.commit()
    return int(updated or 0)


def delete_notification(db: Session, user_id: int, notification_id: int) -> None:
    notification = db.get(models.Notification, int(notification_id))
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.user_id != int(user_id):
        raise AuthorizationError("You can only delete your own notifications")
    db.delete(notification)
    db.commit()
