from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from revas import models
from revas.api.deps import get_current_actor, get_current_user
from revas.core.actors import Actor
from revas.database import get_db
from revas.schemas.products import (
    ClientWithProductCreate,
    ClientWithProductResponse,
    ProductCreate,
    ProductPage,
    ProductRead,
    ProductResponse,
)
from revas.schemas.users import UserRead
from revas.services import products as service
from revas.services.audit import audit_event, audit_request_context
from revas.services.orders_service import total_pages

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductPage)
def list_products(
    company_name: Optional[str] = Query(None, max_length=255),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    rows, total = service.list_products(db, company_name=company_name, page=page, limit=limit)
    return ProductPage(
        products=[ProductRead.model_validate(p) for p in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def register_product(
    request: Request,
    payload: ProductCreate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    product = service.register_product(db, actor, payload)
    audit_event(
        "product.registered",
        actor.id,
        {"product_id": product.id, "company_name": product.company_name},
        db=db,
        **audit_request_context(request),
    )
    return ProductResponse(
        message="Product registered successfully", product=ProductRead.model_validate(product)
    )


@router.post(
    "/clients",
    response_model=ClientWithProductResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_client_with_product(
    request: Request,
    payload: ClientWithProductCreate,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    created = service.create_client_with_product(db, actor, payload)
    audit_event(
        "product.client_created",
        actor.id,
        {
            "user_id": created.user.id,
            "product_id": created.product.id,
            "email_status": created.email.status,
        },
        db=db,
        **audit_request_context(request),
    )
    return ClientWithProductResponse(
        message="Client created and product registered",
        user=UserRead.model_validate(created.user),
        product=ProductRead.model_validate(created.product),
        email_status=created.email.status,
    )
