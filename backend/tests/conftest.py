import os
import tempfile

# CRITICAL: Set environment variables BEFORE any revas imports
# These must be set before revas.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_revas.db")
_TEST_STORAGE_DIR = os.path.join(tempfile.gettempdir(), "test_revas_storage")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["STORAGE_DIR"] = _TEST_STORAGE_DIR
os.environ["STORAGE_BACKEND"] = "local"
os.environ["EMAIL_ENABLED"] = "false"

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Now import revas modules - they will use the test DATABASE_URL
from revas import models
from revas.api import deps
from revas.core.security import create_access_token_for_user, hash_password
from revas.database import Base, get_db, engine as app_engine
from revas.main import app
from revas.services.blob_store import LocalBlobStore

# Use the same engine that the app uses
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)

# Hashing once keeps user fixtures fast.
TEST_PASSWORD = "correct-horse-battery"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """Fresh schema per test; restores dependency overrides afterwards."""
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(tmp_path):
    """Local blob store rooted in a per-test directory, wired into the API."""
    blob_store = LocalBlobStore(root=tmp_path / "blobs")
    app.dependency_overrides[deps.get_store] = lambda: blob_store
    return blob_store


@pytest.fixture
def client(store):
    return TestClient(app)


def create_user(
    db,
    email: str,
    *,
    role: models.AccountManagerRole | None = None,
    client_type: models.ClientType | None = None,
    first_name: str = "Test",
    last_name: str = "User",
    company_name: str | None = None,
) -> models.User:
    user = models.User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        hashed_password=_TEST_PASSWORD_HASH,
        account_manager_role=role,
        client_type=client_type,
        company_name=company_name,
        active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def assign(db, manager: models.User, *clients: models.User) -> None:
    for c in clients:
        db.add(models.AccountManagerClient(manager_id=manager.id, client_id=c.id))
    db.commit()


def auth_headers(user: models.User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token_for_user(user)}"}


@dataclass
class Marketplace:
    buyer_manager: models.User
    supplier_manager: models.User
    buyer: models.User
    supplier: models.User

    @property
    def ids(self) -> dict[str, int]:
        return {
            "buyer_manager": self.buyer_manager.id,
            "supplier_manager": self.supplier_manager.id,
            "buyer": self.buyer.id,
            "supplier": self.supplier.id,
        }


@pytest.fixture
def marketplace(db_session) -> Marketplace:
    """Buyer manager A manages buyer B; supplier manager S manages supplier T."""
    am_buyer = create_user(
        db_session, "am.buyer@example.com", role=models.AccountManagerRole.buyer, first_name="Ana"
    )
    am_supplier = create_user(
        db_session,
        "am.supplier@example.com",
        role=models.AccountManagerRole.supplier,
        first_name="Sam",
    )
    buyer = create_user(
        db_session,
        "buyer@example.com",
        client_type=models.ClientType.Buyer,
        first_name="Bea",
        company_name="Acme Plastics",
    )
    supplier = create_user(
        db_session,
        "supplier@example.com",
        client_type=models.ClientType.Supplier,
        first_name="Tom",
        company_name="Polymer Works",
    )
    assign(db_session, am_buyer, buyer)
    assign(db_session, am_supplier, supplier)
    return Marketplace(am_buyer, am_supplier, buyer, supplier)


def order_payload(market: Marketplace, **overrides) -> dict:
    payload = {
        "buyer_id": market.buyer.id,
        "supplier_id": market.supplier.id,
        "product": ["HDPE regrind"],
        "capacity": 20,
        "price_per_tonne": 450.0,
        "payment_terms": 30,
        "shipping_type": "FOB",
        "buyer_name": "Acme Plastics",
        "buyer_location": "Rotterdam",
        "supplier_name": "Polymer Works",
        "supplier_location": "Antwerp",
    }
    payload.update(overrides)
    return payload


def create_order(client, market: Marketplace, **overrides) -> dict:
    r = client.post(
        "/api/orders",
        json=order_payload(market, **overrides),
        headers=auth_headers(market.buyer_manager),
    )
    assert r.status_code == 201, r.text
    return r.json()["order"]


def create_matched_order(client, market: Marketplace) -> dict:
    order = create_order(client, market)
    r = client.post(
        f"/api/orders/{order['id']}/approve", headers=auth_headers(market.supplier_manager)
    )
    assert r.status_code == 200, r.text
    return r.json()["order"]


def create_order_in_document_phase(client, market: Marketplace) -> dict:
    order = create_matched_order(client, market)
    for manager in (market.buyer_manager, market.supplier_manager):
        r = client.post(
            f"/api/documents/orders/{order['id']}/generate", headers=auth_headers(manager)
        )
        assert r.status_code == 200, r.text
    return order


def pdf_upload(name: str = "signed.pdf") -> dict:
    return {"file": (name, b"%PDF-1.4\n% signed copy\n%%EOF\n", "application/pdf")}
