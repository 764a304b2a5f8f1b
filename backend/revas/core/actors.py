"""Request actors.

A verified token is resolved once per request into one of two actor variants.
Route handlers and services ask the actor capability questions about a
specific order or document instead of comparing role strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from sqlalchemy.orm import Session

from revas import models
from revas.core.errors import AuthorizationError
from revas.models import (
    CLIENT_TYPE_FOR_ROLE,
    DOCUMENT_TYPE_FOR_PARTY,
    DOCUMENT_TYPE_FOR_ROLE,
    AccountManagerRole,
    ClientType,
    DocumentType,
    SigningParty,
)


@dataclass(frozen=True)
class AccountManagerActor:
    id: int
    role: AccountManagerRole
    managed_client_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def client_type(self) -> ClientType:
        return CLIENT_TYPE_FOR_ROLE[self.role]

    @property
    def document_type(self) -> DocumentType:
        return DOCUMENT_TYPE_FOR_ROLE[self.role]

    def side_client_id(self, order: models.Order) -> int | None:
        if self.role is AccountManagerRole.buyer:
            return order.buyer_id
        return order.supplier_id

    def is_order_manager(self, order: models.Order) -> bool:
        return order.account_manager_id_for(self.role) == self.id

    def manages_client(self, client_id: int | None) -> bool:
        return client_id is not None and client_id in self.managed_client_ids

    def can_manage_order(self, order: models.Order) -> bool:
        return self.is_order_manager(order) or self.manages_client(self.side_client_id(order))

    def can_view_order(self, order: models.Order) -> bool:
        return self.can_manage_order(order) or order.created_by_id == self.id

    def can_sign_as(self, party: SigningParty, order: models.Order) -> bool:
        return False


@dataclass(frozen=True)
class ClientActor:
    id: int
    client_type: ClientType

    @property
    def party(self) -> SigningParty:
        if self.client_type is ClientType.Buyer:
            return SigningParty.buyer
        return SigningParty.supplier

    @property
    def document_type(self) -> DocumentType:
        return DOCUMENT_TYPE_FOR_PARTY[self.party]

    def is_party_to(self, order: models.Order) -> bool:
        return order.client_id_for(self.party) == self.id

    def can_manage_order(self, order: models.Order) -> bool:
        return False

    def can_view_order(self, order: models.Order) -> bool:
        return self.is_party_to(order)

    def can_sign_as(self, party: SigningParty, order: models.Order) -> bool:
        return party is self.party and self.is_party_to(order)


Actor = Union[AccountManagerActor, ClientActor]


def actor_from_user(db: Session, user: models.User) -> Actor:
    if user.account_manager_role is not None:
        managed = (
            db.query(models.AccountManagerClient.client_id)
            .filter(models.AccountManagerClient.manager_id == user.id)
            .all()
        )
        return AccountManagerActor(
            id=int(user.id),
            role=user.account_manager_role,
            managed_client_ids=frozenset(int(row[0]) for row in managed),
        )
    if user.client_type is not None:
        return ClientActor(id=int(user.id), client_type=user.client_type)
    raise AuthorizationError("User has neither an account manager role nor a client type")


def require_account_manager(actor: Actor) -> AccountManagerActor:
    if not isinstance(actor, AccountManagerActor):
        raise AuthorizationError("Only account managers can perform this action")
    return actor


def require_client(actor: Actor) -> ClientActor:
    if not isinstance(actor, ClientActor):
        raise AuthorizationError("Only buyer or supplier clients can perform this action")
    return actor


def ensure_can_manage(actor: Actor, order: models.Order) -> AccountManagerActor:
    manager = require_account_manager(actor)
    if not manager.can_manage_order(order):
        raise AuthorizationError("You do not manage this order")
    return manager


def ensure_can_view(actor: Actor, order: models.Order) -> None:
    if not actor.can_view_order(order):
        raise AuthorizationError("You do not have access to this order")
