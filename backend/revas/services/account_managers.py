from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from revas import models
from revas.core.actors import Actor, require_account_manager
from revas.core.errors import NotFoundError, ValidationError
from revas.database import atomic
from revas.models import CLIENT_TYPE_FOR_ROLE, AccountManagerRole

logger = logging.getLogger("revas.account_managers")


def _managed_ids(db: Session, manager_id: int) -> set[int]:
    rows = (
        db.query(models.AccountManagerClient.client_id)
        .filter(models.AccountManagerClient.manager_id == int(manager_id))
        .all()
    )
    return {int(r[0]) for r in rows}


def link_clients(db: Session, manager_id: int, client_ids: Iterable[int]) -> list[int]:
    already = _managed_ids(db, manager_id)
    added: list[int] = []
    for cid in client_ids:
        cid = int(cid)
        if cid in already:
            continue
        db.add(models.AccountManagerClient(manager_id=int(manager_id), client_id=cid))
        already.add(cid)
        added.append(cid)
    db.flush()
    return added


def assign_clients(db: Session, actor: Actor, client_ids: list[int]) -> list[int]:
    """Attach clients to the calling manager; returns the ids that were newly added.

    Every id must be an active client of the type this manager represents.
    Clients already managed are skipped.
    """

    manager = require_account_manager(actor)
    wanted = list(dict.fromkeys(int(c) for c in client_ids))
    if not wanted:
        raise ValidationError("client_ids must not be empty")

    expected_type = manager.client_type
    found = {
        u.id: u
        for u in db.query(models.User).filter(models.User.id.in_(wanted)).all()
    }
    missing = [cid for cid in wanted if cid not in found]
    if missing:
        raise NotFoundError("Unknown client ids", details=[{"client_ids": missing}])

    wrong_type = [
        cid for cid in wanted if found[cid].client_type is not expected_type or not found[cid].active
    ]
    if wrong_type:
        raise ValidationError(
            f"Only active {expected_type.value} clients can be assigned to a {manager.role.value} account manager",
            details=[{"client_ids": wrong_type}],
        )

    with atomic(db):
        added = link_clients(db, manager.id, wanted)

    logger.info(
        "clients_assigned",
        extra={"manager_id": manager.id, "added": added, "requested": wanted},
    )
    return added


def remove_client(db: Session, actor: Actor, client_id: int) -> None:
    manager = require_account_manager(actor)
    with atomic(db):
        link = db.get(models.AccountManagerClient, (manager.id, int(client_id)))
        if link is None:
            raise NotFoundError(f"Client {client_id} is not managed by you")
        db.delete(link)


def list_managed_clients(
    db: Session, actor: Actor, *, page: int = 1, limit: int = 20
) -> tuple[list[models.User], int]:
    manager = require_account_manager(actor)
    q = (
        db.query(models.User)
        .join(models.AccountManagerClient, models.AccountManagerClient.client_id == models.User.id)
        .filter(models.AccountManagerClient.manager_id == manager.id)
    )
    total = q.count()
    clients = (
        q.order_by(models.User.id.asc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
        .all()
    )
    return clients, int(total)


def auto_assign_existing_clients(db: Session, manager: models.User) -> list[int]:
    """Link every active client of the manager's matching type. Caller commits."""

    role: AccountManagerRole = manager.account_manager_role
    client_ids = [
        int(r[0])
        for r in db.query(models.User.id)
        .filter(models.User.client_type == CLIENT_TYPE_FOR_ROLE[role])
        .filter(models.User.active.is_(True))
        .order_by(models.User.id.asc())
        .all()
    ]
    return link_clients(db, manager.id, client_ids)
