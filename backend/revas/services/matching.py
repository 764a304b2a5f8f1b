from __future__ import annotations

from sqlalchemy.orm import Session

from revas import models
from revas.core.errors import NoCounterpartManager
from revas.models import AccountManagerRole


def find_counterpart_manager(
    db: Session,
    *,
    creator_role: AccountManagerRole,
    counterpart_client_id: int,
) -> models.User:
    """Resolve the account manager on the other side of a new order.

    The counterpart has the opposite role and manages the opposite-side client.
    Several candidates resolve to the lowest user id; none is an error and no
    relationship is created implicitly.
    """

    opposite = creator_role.opposite
    manager = (
        db.query(models.User)
        .join(
            models.AccountManagerClient,
            models.AccountManagerClient.manager_id == models.User.id,
        )
        .filter(models.AccountManagerClient.client_id == int(counterpart_client_id))
        .filter(models.User.account_manager_role == opposite)
        .filter(models.User.active.is_(True))
        .order_by(models.User.id.asc())
        .first()
    )
    if manager is None:
        raise NoCounterpartManager(
            f"No {opposite.value} account manager manages user {counterpart_client_id}",
            details=[{"role": opposite.value, "client_id": int(counterpart_client_id)}],
        )
    return manager
