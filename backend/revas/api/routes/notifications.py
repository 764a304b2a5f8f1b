from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from revas import models
from revas.api.deps import get_current_user
from revas.database import get_db
from revas.models import NotificationType
from revas.schemas.notifications import NotificationMessage, NotificationPage, NotificationRead
from revas.services import notifications as service
from revas.services.orders_service import total_pages

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationPage)
def list_notifications(
    is_read: Optional[bool] = Query(None),
    type_filter: Optional[NotificationType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    rows, total, unread = service.list_notifications(
        db, current_user.id, is_read=is_read, kind=type_filter, page=page, limit=limit
    )
    return NotificationPage(
        notifications=[NotificationRead.model_validate(n) for n in rows],
        total=total,
        unread_count=unread,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.patch("/read-all", response_model=NotificationMessage)
def mark_all_notifications_read(
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    updated = service.mark_all_read(db, current_user.id)
    return NotificationMessage(message="All notifications marked as read", updated=updated)


@router.patch("/{notification_id}/read", response_model=NotificationMessage)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    notification = service.mark_read(db, current_user.id, notification_id)
    return NotificationMessage(
        message="Notification marked as read",
        notification=NotificationRead.model_validate(notification),
    )


@router.delete("/{notification_id}", response_model=NotificationMessage)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    service.delete_notification(db, current_user.id, notification_id)
    return NotificationMessage(message="Notification deleted")
