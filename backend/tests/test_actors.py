import pytest

from conftest import create_user
from revas import models
from revas.core.actors import (
    AccountManagerActor,
    ClientActor,
    actor_from_user,
    ensure_can_manage,
    ensure_can_view,
    require_account_manager,
    require_client,
)
from revas.core.errors import AuthorizationError
from revas.models import AccountManagerRole, ClientType, DocumentType, SigningParty


def _order(**kwargs) -> models.Order:
    defaults = dict(
        id=1,
        buyer_id=10,
        supplier_id=20,
        buyer_account_manager_id=1,
        supplier_account_manager_id=2,
        created_by_id=1,
    )
    defaults.update(kwargs)
    return models.Order(**defaults)


def test_actor_from_user_resolves_variants(db_session, marketplace):
    manager = actor_from_user(db_session, marketplace.buyer_manager)
    assert isinstance(manager, AccountManagerActor)
    assert manager.role is AccountManagerRole.buyer
    assert manager.managed_client_ids == frozenset({marketplace.buyer.id})
    assert manager.document_type is DocumentType.sales_order

    supplier = actor_from_user(db_session, marketplace.supplier)
    assert isinstance(supplier, ClientActor)
    assert supplier.party is SigningParty.supplier
    assert supplier.document_type is DocumentType.purchase_order


def test_user_without_role_or_type_is_rejected():
    user = models.User(id=5, email="x@example.com", first_name="X", last_name="Y", hashed_password="h")

    with pytest.raises(AuthorizationError):
        actor_from_user(None, user)


def test_manager_capabilities():
    order = _order()
    buyer_side = AccountManagerActor(id=1, role=AccountManagerRole.buyer)
    supplier_side = AccountManagerActor(id=2, role=AccountManagerRole.supplier)
    colleague = AccountManagerActor(id=3, role=AccountManagerRole.buyer, managed_client_ids=frozenset({10}))
    outsider = AccountManagerActor(id=4, role=AccountManagerRole.supplier, managed_client_ids=frozenset({10}))

    assert buyer_side.can_manage_order(order)
    assert supplier_side.can_manage_order(order)
    # Managing the client on your own side is enough.
    assert colleague.can_manage_order(order)
    # A supplier manager linked to the buyer does not manage the buyer side.
    assert not outsider.can_manage_order(order)

    assert not buyer_side.can_sign_as(SigningParty.buyer, order)
    assert ensure_can_manage(buyer_side, order) is buyer_side
    with pytest.raises(AuthorizationError):
        ensure_can_manage(outsider, order)


def test_client_capabilities():
    order = _order()
    buyer = ClientActor(id=10, client_type=ClientType.Buyer)
    other_buyer = ClientActor(id=11, client_type=ClientType.Buyer)

    assert buyer.can_view_order(order)
    assert buyer.can_sign_as(SigningParty.buyer, order)
    assert not buyer.can_sign_as(SigningParty.supplier, order)
    assert not buyer.can_manage_order(order)
    assert not other_buyer.can_view_order(order)

    ensure_can_view(buyer, order)
    with pytest.raises(AuthorizationError):
        ensure_can_view(other_buyer, order)
    with pytest.raises(AuthorizationError):
        ensure_can_manage(buyer, order)


def test_require_helpers():
    manager = AccountManagerActor(id=1, role=AccountManagerRole.supplier)
    client = ClientActor(id=2, client_type=ClientType.Supplier)

    assert require_account_manager(manager) is manager
    assert require_client(client) is client
    with pytest.raises(AuthorizationError):
        require_account_manager(client)
    with pytest.raises(AuthorizationError):
        require_client(manager)


def test_created_by_can_view_without_managing(db_session):
    creator = create_user(db_session, "am@example.com", role=AccountManagerRole.supplier)
    actor = actor_from_user(db_session, creator)
    order = _order(created_by_id=creator.id, supplier_account_manager_id=None)

    assert actor.can_view_order(order)
    assert not actor.can_manage_order(order)
