from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from revas.api.deps import get_current_actor
from revas.core.actors import Actor
from revas.database import get_db
from revas.schemas.orders import MessageResponse
from revas.schemas.users import (
    ClientAssignRequest,
    ClientAssignResponse,
    ManagedClientPage,
    UserRead,
)
from revas.services import account_managers as service
from revas.services.audit import audit_event, audit_request_context
from revas.services.orders_service import total_pages

router = APIRouter(prefix="/account-managers", tags=["account-managers"])


@router.get("/me/clients", response_model=ManagedClientPage)
def list_my_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    clients, total = service.list_managed_clients(db, actor, page=page, limit=limit)
    return ManagedClientPage(
        clients=[UserRead.model_validate(c) for c in clients],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.post("/me/clients", response_model=ClientAssignResponse)
def assign_my_clients(
    request: Request,
    payload: ClientAssignRequest,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    added = service.assign_clients(db, actor, payload.client_ids)
    audit_event(
        "account_manager.clients_assigned",
        actor.id,
        {"requested": payload.client_ids, "added": added},
        db=db,
        **audit_request_context(request),
    )
    if added:
        message = f"Assigned {len(added)} client(s)"
    else:
        message = "All clients were already assigned"
    return ClientAssignResponse(message=message, added_client_ids=added)


@router.delete("/me/clients/{client_id}", response_model=MessageResponse)
def remove_my_client(
    request: Request,
    client_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    service.remove_client(db, actor, client_id)
    audit_event(
        "account_manager.client_removed",
        actor.id,
        {"client_id": client_id},
        db=db,
        **audit_request_context(request),
    )
    return MessageResponse(message=f"Client {client_id} removed")
