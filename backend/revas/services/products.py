from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revas import models
from revas.core.actors import Actor, require_account_manager, require_client
from revas.core.errors import ValidationError
from revas.core.security import hash_password
from revas.database import atomic
from revas.schemas.products import ClientWithProductCreate, ProductFields
from revas.services.account_managers import link_clients
from revas.services.mailer import SendResult, send_email

logger = logging.getLogger("revas.products")


@dataclass
class ClientWithProduct:
    user: models.User
    product: models.Product
    email: SendResult


def _product_from(fields: ProductFields, user_id: int) -> models.Product:
    return models.Product(
        user_id=int(user_id),
        company_name=fields.company_name.strip(),
        product=fields.product.strip(),
        capacity=fields.capacity,
        price_per_tonne=fields.price_per_tonne,
        location=fields.location.strip(),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def register_product(db: Session, actor: Actor, payload: ProductFields) -> models.Product:
    client = require_client(actor)
    existing = db.query(models.Product).filter(models.Product.user_id == client.id).first()
    if existing is not None:
        raise ValidationError(
            "Product already registered", details=[{"product_id": existing.id}]
        )

    try:
        with atomic(db):
            product = _product_from(payload, client.id)
            db.add(product)
    except IntegrityError as exc:
        raise ValidationError("Product already registered") from exc
    db.refresh(product)

    logger.info("product_registered", extra={"product_id": product.id, "user_id": client.id})
    return product


def list_products(
    db: Session, *, company_name: str | None = None, page: int = 1, limit: int = 20
) -> tuple[list[models.Product], int]:
    """Listings ordered by company name; ``company_name`` matches case-insensitively anywhere."""

    q = db.query(models.Product)
    term = (company_name or "").strip()
    if term:
        q = q.filter(models.Product.company_name.ilike(f"%{_escape_like(term)}%", escape="\\"))

    total = q.count()
    rows = (
        q.order_by(models.Product.company_name.asc(), models.Product.id.asc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, int(total)


def _welcome_body(user: models.User, product: models.Product, password: str) -> str:
    return "\n".join(
        [
            f"Hello {user.first_name},",
            "",
            f"An account has been created for your company ({product.company_name}).",
            "",
            f"Email: {user.email}",
            f"Product: {product.product}",
            f"Capacity: {product.capacity:g} tonnes",
            f"Price per tonne: {product.price_per_tonne:,.2f}",
            f"Location: {product.location}",
            "",
            f"Temporary password: {password}",
            "",
            "Please log in and change your password.",
        ]
    )


def create_client_with_product(
    db: Session, actor: Actor, payload: ClientWithProductCreate
) -> ClientWithProduct:
    """Open a client account on the manager's side, list its product and link it.

    The client gets a random password by email once the rows are committed;
    a failed email does not undo the account.
    """

    manager = require_account_manager(actor)
    email = payload.email.strip().lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise ValidationError("Email already registered")

    password = secrets.token_hex(8)
    with atomic(db):
        user = models.User(
            email=email,
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            hashed_password=hash_password(password),
            client_type=manager.client_type,
            job_title=payload.job_title,
            company_name=payload.company_name.strip(),
            active=True,
        )
        db.add(user)
        db.flush()
        product = _product_from(payload, user.id)
        db.add(product)
        link_clients(db, manager.id, [user.id])
    db.refresh(user)
    db.refresh(product)

    result = send_email(
        to=user.email,
        subject="Your Revas account details",
        body=_welcome_body(user, product, password),
        idempotency_key=f"welcome:{user.id}",
    )
    if not result.ok:
        logger.warning(
            "welcome_email_failed", extra={"user_id": user.id, "error": result.error}
        )

    logger.info(
        "client_created_with_product",
        extra={"manager_id": manager.id, "user_id": user.id, "product_id": product.id},
    )
    return ClientWithProduct(user=user, product=product, email=result)
