"""Development accounts: one account manager per side, each managing one client."""

from __future__ import annotations

from sqlalchemy.orm import Session

from revas import models
from revas.core.security import hash_password
from revas.models import AccountManagerRole, ClientType

DEV_DOMAIN = "revas.local"

# (local part, first name, last name, manager role, client type, company)
DEV_USERS = [
    ("am.buyer", "Bianca", "Buyer-Manager", AccountManagerRole.buyer, None, None),
    ("am.supplier", "Sergio", "Supplier-Manager", AccountManagerRole.supplier, None, None),
    ("buyer", "Bruno", "Client", None, ClientType.Buyer, "Acme Recycling"),
    ("supplier", "Sofia", "Client", None, ClientType.Supplier, "Polymer Works"),
]

# manager local part -> managed client local part
DEV_ASSIGNMENTS = {"am.buyer": "buyer", "am.supplier": "supplier"}


def ensure_user(
    db: Session,
    *,
    email: str,
    first_name: str,
    last_name: str,
    password: str,
    role: AccountManagerRole | None = None,
    client_type: ClientType | None = None,
    company_name: str | None = None,
    reset_password: bool = False,
) -> tuple[models.User, bool]:
    user = db.query(models.User).filter(models.User.email == email).first()
    if user is not None:
        if reset_password:
            user.hashed_password = hash_password(password)
            user.active = True
            db.flush()
        return user, False

    user = models.User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        hashed_password=hash_password(password),
        account_manager_role=role,
        client_type=client_type,
        company_name=company_name,
        active=True,
    )
    db.add(user)
    db.flush()
    return user, True


def ensure_assignment(db: Session, manager: models.User, client: models.User) -> bool:
    if db.get(models.AccountManagerClient, (manager.id, client.id)) is not None:
        return False
    db.add(models.AccountManagerClient(manager_id=manager.id, client_id=client.id))
    db.flush()
    return True


def seed_dev_users(
    db: Session,
    *,
    password: str = "revas-dev-123",
    domain: str = DEV_DOMAIN,
    reset_password: bool = False,
) -> list[tuple[models.User, bool]]:
    """Create the dev accounts and their assignments. Caller commits."""

    by_local: dict[str, models.User] = {}
    results: list[tuple[models.User, bool]] = []
    for local, first, last, role, client_type, company in DEV_USERS:
        user, created = ensure_user(
            db,
            email=f"{local}@{domain}",
            first_name=first,
            last_name=last,
            password=password,
            role=role,
            client_type=client_type,
            company_name=company,
            reset_password=reset_password,
        )
        by_local[local] = user
        results.append((user, created))

    for manager_local, client_local in DEV_ASSIGNMENTS.items():
        ensure_assignment(db, by_local[manager_local], by_local[client_local])

    return results
