import os

# Must be set before storefront.config is imported
TEST_DATABASE_URL = "sqlite:///./test_storefront.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["APP_ENV"] = "development"
for name in ("EMAIL_USER", "EMAIL_PASS", "ADMIN_EMAIL", "ADMIN_PASSWORD"):
    os.environ[name] = ""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.database import Base, get_db
from storefront.main import app as fastapi_app
from storefront.models import Donation, Order, Product
from storefront import storage

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_EMAIL = "admin@example.org"
ADMIN_PASSWORD = "s3cret-pass"


@pytest.fixture(autouse=True)
def setup_db(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client, db):
    storage.create_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD, "Site Admin")
    db.commit()
    response = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def make_product(db):
    def _make(**overrides):
        fields = dict(
            slug="tote-bag",
            name="Tote Bag",
            category="Accessories",
            price=Decimal("35.00"),
            currency="GHS",
            description="Canvas tote",
            inventory=10,
            variations=[],
        )
        fields.update(overrides)
        product = Product(**fields)
        db.add(product)
        db.commit()
        return product.id
    return _make


@pytest.fixture
def make_order(db):
    def _make(**overrides):
        fields = dict(
            customer_email="buyer@example.org",
            customer_name="Ama Mensah",
            items=[{"productId": 1, "productName": "Tote Bag", "quantity": 1, "price": "35.00"}],
            total_amount=Decimal("35.00"),
            currency="GHS",
            stripe_payment_intent_id="pi_order_1",
            status="pending",
        )
        fields.update(overrides)
        order = Order(**fields)
        db.add(order)
        db.commit()
        return order.id
    return _make


@pytest.fixture
def make_donation(db):
    def _make(**overrides):
        fields = dict(
            donor_email="donor@example.org",
            donor_name="Kofi Boateng",
            amount=Decimal("50.00"),
            currency="USD",
            frequency="one-time",
            stripe_payment_intent_id="pi_donation_1",
            status="pending",
        )
        fields.update(overrides)
        donation = Donation(**fields)
        db.add(donation)
        db.commit()
        return donation.id
    return _make


@pytest.fixture
def intent_event():
    """Builds a Stripe PaymentIntent event payload as a plain dict."""
    def _event(event_type, intent_id, amount, currency, metadata=None, event_id="evt_1", **extra):
        obj = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount,
            "amount_received": amount if event_type == "payment_intent.succeeded" else 0,
            "currency": currency,
            "metadata": metadata or {},
        }
        obj.update(extra)
        return {"id": event_id, "type": event_type, "data": {"object": obj}}
    return _event
