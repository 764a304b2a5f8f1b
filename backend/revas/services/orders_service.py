from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from revas import models
from revas.core.actors import (
    AccountManagerActor,
    Actor,
    ClientActor,
    ensure_can_manage,
    ensure_can_view,
    require_account_manager,
)
from revas.core.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    missing_fields_error,
)
from revas.database import atomic
from revas.models import (
    AccountManagerRole,
    ClientType,
    DocumentType,
    NotificationType,
    OrderStatus,
    SavedStatus,
)
from revas.services.matching import find_counterpart_manager
from revas.services.notifications import (
    fan_out,
    kind_for_status,
    order_created_recipients,
    status_change_recipients,
)
from revas.services.order_transitions import check_transition, lock_order, transition_order

REQUIRED_ORDER_FIELDS = (
    "buyer_id",
    "supplier_id",
    "product",
    "capacity",
    "price_per_tonne",
    "payment_terms",
    "shipping_type",
    "buyer_name",
    "supplier_name",
)

ORDER_TERM_FIELDS = REQUIRED_ORDER_FIELDS + (
    "buyer_location",
    "supplier_location",
    "supplier_price",
    "shipping_cost",
    "negotiate_price",
    "price_range",
)


@dataclass
class OrderMutation:
    order: models.Order
    notifications: list[models.Notification] = field(default_factory=list)

    @property
    def notified_user_ids(self) -> list[int]:
        return [n.user_id for n in self.notifications]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    return False


def missing_required_fields(values: dict[str, Any]) -> list[str]:
    return [name for name in REQUIRED_ORDER_FIELDS if _is_blank(values.get(name))]


def _apply_terms(order: models.Order, values: dict[str, Any]) -> None:
    for name in ORDER_TERM_FIELDS:
        if name in values:
            value = values[name]
            if name == "negotiate_price" and value is None:
                value = False
            setattr(order, name, value)


def _order_terms(order: models.Order) -> dict[str, Any]:
    return {name: getattr(order, name) for name in ORDER_TERM_FIELDS}


def _load_client(db: Session, user_id: int, expected: ClientType, field_name: str) -> models.User:
    user = db.get(models.User, int(user_id))
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details=[{"field": field_name}])
    if user.client_type != expected:
        raise ValidationError(
            f"User {user_id} is not a {expected.value} client",
            details=[{"field": field_name, "client_type": expected.value}],
        )
    return user


def _resolve_parties(db: Session, manager: AccountManagerActor, order: models.Order) -> models.User:
    """Validate both clients, bind the creator's side and resolve the other side.

    Returns the counterpart account manager.
    """

    _load_client(db, order.buyer_id, ClientType.Buyer, "buyer_id")
    _load_client(db, order.supplier_id, ClientType.Supplier, "supplier_id")

    if manager.role is AccountManagerRole.buyer:
        own_client_id, counterpart_client_id = order.buyer_id, order.supplier_id
    else:
        own_client_id, counterpart_client_id = order.supplier_id, order.buyer_id

    if not manager.manages_client(own_client_id):
        raise AuthorizationError(
            f"You do not manage {manager.client_type.value.lower()} user {own_client_id}"
        )

    counterpart = find_counterpart_manager(
        db, creator_role=manager.role, counterpart_client_id=counterpart_client_id
    )
    if manager.role is AccountManagerRole.buyer:
        order.buyer_account_manager_id = manager.id
        order.supplier_account_manager_id = counterpart.id
    else:
        order.supplier_account_manager_id = manager.id
        order.buyer_account_manager_id = counterpart.id
    return counterpart


def _emit_created(db: Session, order: models.Order, actor_id: int, counterpart_id: int):
    return fan_out(
        db,
        order=order,
        kind=NotificationType.order_created,
        actor_id=actor_id,
        recipients=order_created_recipients(order, counterpart_id),
        payload={
            "kind": "order_created",
            "created_by_id": actor_id,
            "status": order.status.value,
        },
    )


def create_order(db: Session, actor: Actor, values: dict[str, Any]) -> OrderMutation:
    manager = require_account_manager(actor)

    missing = missing_required_fields(values)
    if missing:
        raise missing_fields_error(missing)

    with atomic(db):
        order = models.Order(
            created_by_id=manager.id,
            saved_status=SavedStatus.confirmed,
            status=OrderStatus.not_matched,
        )
        _apply_terms(order, values)
        counterpart = _resolve_parties(db, manager, order)
        db.add(order)
        db.flush()
        notifications = _emit_created(db, order, manager.id, counterpart.id)

    db.refresh(order)
    return OrderMutation(order=order, notifications=notifications)


def _creator_side_client_id(order: models.Order) -> int | None:
    if order.created_by_id == order.buyer_account_manager_id:
        return order.buyer_id
    if order.created_by_id == order.supplier_account_manager_id:
        return order.supplier_id
    return None


def _ensure_confirmed(order: models.Order) -> None:
    if order.saved_status != SavedStatus.confirmed:
        raise ValidationError(f"Order {order.id} is a draft; confirm it first")


def _ensure_not_self_approval(manager: AccountManagerActor, order: models.Order) -> None:
    if order.created_by_id == manager.id:
        raise AuthorizationError("You cannot approve an order you created")


def _documents_complete(db: Session, order_id: int) -> bool:
    types = {
        row[0]
        for row in db.query(models.Document.doc_type)
        .filter(models.Document.order_id == order_id)
        .all()
    }
    return {DocumentType.sales_order, DocumentType.purchase_order} <= types


def _documents_fully_signed(db: Session, order_id: int) -> bool:
    docs = db.query(models.Document).filter(models.Document.order_id == order_id).all()
    if len(docs) < 2:
        return False
    return all(doc.status == models.DocumentStatus.fully_signed for doc in docs)


def approve_order(db: Session, actor: Actor, order_id: int) -> OrderMutation:
    manager = require_account_manager(actor)

    with atomic(db):
        order = lock_order(db, order_id)
        _ensure_confirmed(order)
        ensure_can_manage(manager, order)
        _ensure_not_self_approval(manager, order)

        previous = transition_order(
            db,
            order,
            OrderStatus.matched,
            updates={"matched_by_id": manager.id, "approved_at": models.utc_now()},
        )
        notifications = fan_out(
            db,
            order=order,
            kind=NotificationType.status_changed,
            actor_id=manager.id,
            recipients=[order.created_by_id, _creator_side_client_id(order)],
            payload={
                "kind": "status_changed",
                "old_status": previous.value,
                "new_status": order.status.value,
            },
        )

    db.refresh(order)
    return OrderMutation(order=order, notifications=notifications)


def update_order_status(
    db: Session, actor: Actor, order_id: int, new_status: OrderStatus
) -> OrderMutation:
    manager = require_account_manager(actor)

    with atomic(db):
        order = lock_order(db, order_id)
        _ensure_confirmed(order)
        ensure_can_manage(manager, order)
        check_transition(order.status, new_status)

        updates: dict[str, Any] = {}
        if new_status is OrderStatus.matched:
            _ensure_not_self_approval(manager, order)
            updates = {"matched_by_id": manager.id, "approved_at": models.utc_now()}
        elif new_status is OrderStatus.document_phase:
            if not _documents_complete(db, order.id):
                raise ValidationError(
                    "Both the sales order and the purchase order must exist before the document phase"
                )
            if order.document_generated_at is None:
                updates = {"document_generated_at": models.utc_now()}
        elif new_status is OrderStatus.processing:
            if not _documents_fully_signed(db, order.id):
                raise ValidationError("Both documents must be fully signed before processing")

        previous = transition_order(db, order, new_status, updates=updates)

        kind = kind_for_status(new_status)
        notifications = fan_out(
            db,
            order=order,
            kind=kind,
            actor_id=manager.id,
            recipients=status_change_recipients(order),
            payload={
                "kind": kind.value,
                "old_status": previous.value,
                "new_status": new_status.value,
            },
        )

    db.refresh(order)
    return OrderMutation(order=order, notifications=notifications)


# Drafts


def _load_own_draft(db: Session, manager: AccountManagerActor, order_id: int) -> models.Order:
    order = lock_order(db, order_id)
    if order.created_by_id != manager.id:
        raise AuthorizationError("Only the creator can change a draft order")
    if order.saved_status != SavedStatus.draft:
        raise ValidationError(f"Order {order.id} is confirmed and can no longer be edited as a draft")
    return order


def save_draft(db: Session, actor: Actor, values: dict[str, Any]) -> models.Order:
    manager = require_account_manager(actor)

    with atomic(db):
        order = models.Order(
            created_by_id=manager.id,
            saved_status=SavedStatus.draft,
            status=OrderStatus.not_matched,
        )
        _apply_terms(order, values)
        if manager.role is AccountManagerRole.buyer:
            order.buyer_account_manager_id = manager.id
        else:
            order.supplier_account_manager_id = manager.id
        db.add(order)

    db.refresh(order)
    return order


def update_draft(db: Session, actor: Actor, order_id: int, values: dict[str, Any]) -> models.Order:
    manager = require_account_manager(actor)

    with atomic(db):
        order = _load_own_draft(db, manager, order_id)
        _apply_terms(order, values)

    db.refresh(order)
    return order


def delete_draft(db: Session, actor: Actor, order_id: int) -> None:
    manager = require_account_manager(actor)

    with atomic(db):
        order = _load_own_draft(db, manager, order_id)
        db.delete(order)


def confirm_draft(
    db: Session, actor: Actor, order_id: int, values: dict[str, Any] | None = None
) -> OrderMutation:
    """Submit a draft: same validation, matching and notifications as create."""

    manager = require_account_manager(actor)

    with atomic(db):
        order = _load_own_draft(db, manager, order_id)
        if values:
            _apply_terms(order, values)

        missing = missing_required_fields(_order_terms(order))
        if missing:
            raise missing_fields_error(missing)

        counterpart = _resolve_parties(db, manager, order)
        order.saved_status = SavedStatus.confirmed
        order.status = OrderStatus.not_matched
        db.flush()
        notifications = _emit_created(db, order, manager.id, counterpart.id)

    db.refresh(order)
    return OrderMutation(order=order, notifications=notifications)


# Queries


def visibility_filter(actor: Actor):
    if isinstance(actor, ClientActor):
        if actor.client_type is ClientType.Buyer:
            return models.Order.buyer_id == actor.id
        return models.Order.supplier_id == actor.id

    side_client = (
        models.Order.buyer_id if actor.role is AccountManagerRole.buyer else models.Order.supplier_id
    )
    clauses = [
        models.Order.buyer_account_manager_id == actor.id,
        models.Order.supplier_account_manager_id == actor.id,
        models.Order.created_by_id == actor.id,
    ]
    if actor.managed_client_ids:
        clauses.append(side_client.in_(actor.managed_client_ids))
    return or_(*clauses)


def list_orders(
    db: Session,
    actor: Actor,
    *,
    status: OrderStatus | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[models.Order], int]:
    q = (
        db.query(models.Order)
        .filter(models.Order.saved_status == SavedStatus.confirmed)
        .filter(visibility_filter(actor))
    )
    if status is not None:
        q = q.filter(models.Order.status == status)

    total = q.count()
    orders = (
        q.order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def total_pages(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit)) if limit else 1


def list_drafts(db: Session, actor: Actor) -> list[models.Order]:
    manager = require_account_manager(actor)
    return (
        db.query(models.Order)
        .filter(models.Order.created_by_id == manager.id)
        .filter(models.Order.saved_status == SavedStatus.draft)
        .order_by(models.Order.updated_at.desc(), models.Order.id.desc())
        .all()
    )


def get_order(db: Session, actor: Actor, order_id: int) -> models.Order:
    order = db.get(models.Order, int(order_id))
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if order.saved_status == SavedStatus.draft and order.created_by_id != actor.id:
        raise NotFoundError(f"Order {order_id} not found")
    ensure_can_view(actor, order)
    return order
