from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from revas.api.deps import get_current_actor
from revas.core.actors import Actor
from revas.database import get_db
from revas.models import OrderStatus
from revas.schemas.orders import (
    MessageResponse,
    OrderCreate,
    OrderDetail,
    OrderDraftUpdate,
    OrderPage,
    OrderRead,
    OrderResponse,
    OrderStatusUpdate,
)
from revas.services import orders_service
from revas.services.audit import audit_event, audit_request_context
from revas.services.notifications import deliver_notification_emails

router = APIRouter(prefix="/orders", tags=["orders"])


def _after_commit(
    db: Session,
    request: Request,
    action: str,
    actor: Actor,
    mutation: orders_service.OrderMutation,
    payload: dict,
) -> None:
    deliver_notification_emails(db, mutation.notifications)
    audit_event(
        action,
        actor.id,
        {**payload, "notified_user_ids": mutation.notified_user_ids},
        db=db,
        order_id=mutation.order.id,
        **audit_request_context(request),
    )


def _order_response(message: str, mutation: orders_service.OrderMutation) -> OrderResponse:
    return OrderResponse(
        message=message,
        order=OrderRead.model_validate(mutation.order),
        notified_user_ids=mutation.notified_user_ids,
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    request: Request,
    payload: OrderCreate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    mutation = orders_service.create_order(db, actor, payload.model_dump(exclude_unset=True))
    _after_commit(db, request, "order.created", actor, mutation, {"status": mutation.order.status.value})
    return _order_response("Order created", mutation)


@router.get("", response_model=OrderPage)
def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    orders, total = orders_service.list_orders(db, actor, status=status_filter, page=page, limit=limit)
    return OrderPage(
        orders=[OrderRead.model_validate(o) for o in orders],
        total=total,
        page=page,
        limit=limit,
        total_pages=orders_service.total_pages(total, limit),
    )


@router.get("/drafts", response_model=list[OrderRead])
def list_drafts(
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    return orders_service.list_drafts(db, actor)


@router.post("/drafts", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def save_draft(
    payload: OrderDraftUpdate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    return orders_service.save_draft(db, actor, payload.model_dump(exclude_unset=True))


@router.patch("/drafts/{order_id}", response_model=OrderRead)
def update_draft(
    order_id: int,
    payload: OrderDraftUpdate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    return orders_service.update_draft(db, actor, order_id, payload.model_dump(exclude_unset=True))


@router.delete("/drafts/{order_id}", response_model=MessageResponse)
def delete_draft(
    order_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    orders_service.delete_draft(db, actor, order_id)
    return MessageResponse(message=f"Draft order {order_id} deleted")


@router.post("/drafts/{order_id}/confirm", response_model=OrderResponse)
def confirm_draft(
    request: Request,
    order_id: int,
    payload: Optional[OrderDraftUpdate] = None,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    values = payload.model_dump(exclude_unset=True) if payload is not None else None
    mutation = orders_service.confirm_draft(db, actor, order_id, values)
    _after_commit(db, request, "order.created", actor, mutation, {"from_draft": True})
    return _order_response("Order created", mutation)


@router.get("/{order_id}", response_model=OrderDetail)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    return orders_service.get_order(db, actor, order_id)


@router.post("/{order_id}/approve", response_model=OrderResponse)
def approve_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    mutation = orders_service.approve_order(db, actor, order_id)
    _after_commit(db, request, "order.approved", actor, mutation, {"status": mutation.order.status.value})
    return _order_response("Order approved", mutation)


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    request: Request,
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    mutation = orders_service.update_order_status(db, actor, order_id, payload.status)
    _after_commit(
        db,
        request,
        "order.status_changed",
        actor,
        mutation,
        {"status": mutation.order.status.value},
    )
    return _order_response(f"Order status updated to {mutation.order.status.value}", mutation)
