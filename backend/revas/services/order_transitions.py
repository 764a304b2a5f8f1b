from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy.orm import Session

from revas import models
from revas.core.errors import ConflictError, InvalidTransition, NotFoundError
from revas.models import OrderStatus

# Linear workflow; no branching and no way back.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.not_matched: frozenset({OrderStatus.matched}),
    OrderStatus.matched: frozenset({OrderStatus.document_phase}),
    OrderStatus.document_phase: frozenset({OrderStatus.processing}),
    OrderStatus.processing: frozenset({OrderStatus.completed}),
    OrderStatus.completed: frozenset(),
}


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def is_allowed(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def allowed_from(requested: OrderStatus) -> set[OrderStatus]:
    return {src for src, targets in ALLOWED_TRANSITIONS.items() if requested in targets}


def check_transition(current: OrderStatus, requested: OrderStatus) -> None:
    if not is_allowed(current, requested):
        raise InvalidTransition(current.value, requested.value)


def atomic_transition_order_status(
    *,
    db: Session,
    order_id: int,
    to_status: OrderStatus,
    allowed_from_statuses: Iterable[OrderStatus] | None = None,
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """Apply an order status transition with an atomic DB guard.

    A single conditional UPDATE keeps two concurrent requests from both
    advancing the same order from the same stale status:

        UPDATE orders
        SET status = :to_status, ...
        WHERE id = :order_id AND status IN (:allowed_from)

    Callers control commit/rollback.
    """

    sources = set(allowed_from_statuses) if allowed_from_statuses is not None else allowed_from(to_status)

    update_values: dict[str, Any] = {"status": to_status, "updated_at": models.utc_now()}
    if updates:
        update_values.update(updates)

    rowcount = (
        db.query(models.Order)
        .filter(models.Order.id == int(order_id))
        .filter(models.Order.status.in_(sources))
        .update(update_values, synchronize_session=False)
    )

    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def transition_order(
    db: Session,
    order: models.Order,
    to_status: OrderStatus,
    *,
    updates: dict[str, Any] | None = None,
) -> OrderStatus:
    """Validate against the table, apply atomically, and refresh ``order``.

    Returns the status the order had before the transition. Raises
    ``InvalidTransition`` when the table forbids the move and ``ConflictError``
    when another request changed the order first; rolling back is left to
    the caller's transaction scope.
    """

    previous = order.status
    check_transition(previous, to_status)

    result = atomic_transition_order_status(
        db=db,
        order_id=order.id,
        to_status=to_status,
        allowed_from_statuses={previous},
        updates=updates,
    )
    if not result.updated:
        raise ConflictError(
            f"Order {order.id} changed status concurrently; reload and retry",
            details=[{"expected_status": previous.value, "requested_status": to_status.value}],
        )

    db.refresh(order)
    return previous


def lock_order(db: Session, order_id: int) -> models.Order:
    """Load an order for mutation, row-locked where the database supports it."""

    q = db.query(models.Order).filter(models.Order.id == int(order_id)).populate_existing()

    # SQLite doesn't support FOR UPDATE; its database-level write lock serializes writers.
    dialect_name = db.get_bind().dialect.name
    if str(dialect_name).lower() != "sqlite":
        q = q.with_for_update()

    order = q.first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order
