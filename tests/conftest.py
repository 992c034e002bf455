"""Pytest fixtures for the checkout API tests."""

import hashlib
import hmac
import json
import os
import tempfile
import time

# Settings are read at import time, so the environment is prepared first
_tmpdir = tempfile.mkdtemp()
os.environ["DATABASE_URL"] = f"sqlite:///{_tmpdir}/app.db"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["TAX_RATE"] = "0.07"
os.environ["DEFAULT_SHIPPING_PRICE"] = "10.0"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import main
from database import Base, get_db, make_engine
from models.order import Order
from models.product import Product
from models.users import User
from routes.payment import get_payment_gateway
from utils.errors import UpstreamTimeout
from utils.tokenJWT import create_access_token

WEBHOOK_SECRET = "whsec_test"


class FakeGateway:
    """In-memory stand-in for the payment intents API."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.fail_retrieve_with = None

    async def create_payment_intent(self, amount, currency, metadata, payment_method_types=("card",), idempotency_key=None):
        intent_id = f"pi_{len(self.intents) + 1}"
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount,
            "currency": currency,
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret_abc",
            "metadata": {k: str(v) for k, v in metadata.items()},
            "payment_method_types": list(payment_method_types),
        }
        self.intents[intent_id] = intent
        self.created.append({"intent": intent, "idempotency_key": idempotency_key})
        return dict(intent)

    async def retrieve_payment_intent(self, intent_id):
        if self.fail_retrieve_with is not None:
            raise self.fail_retrieve_with
        return dict(self.intents[intent_id])

    async def aclose(self):
        pass

    def succeed(self, intent_id):
        self.intents[intent_id]["status"] = "succeeded"

    def decline(self, intent_id):
        self.intents[intent_id]["status"] = "requires_payment_method"
        self.intents[intent_id]["last_payment_error"] = {"code": "card_declined"}

    def time_out(self):
        self.fail_retrieve_with = UpstreamTimeout("Payment gateway timed out")


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/test.db")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def _make(email="buyer@example.com", role="user", name="Buyer"):
        user = User(email=email, role=role, name=name)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(name="Product", price=10.0, stock=5, image_url=None):
        product = Product(name=name, price=price, stock=stock, reserved=0, image_url=image_url)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin", name="Admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


def stock_of(session_factory, product_id):
    """(stock, reserved) read through a fresh session."""
    with session_factory() as db:
        product = db.get(Product, product_id)
        return product.stock, product.reserved


def order_count(session_factory):
    with session_factory() as db:
        return db.query(Order).count()


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signature = hmac.new(secret.encode(), ts.encode() + b"." + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def event_payload(event_id, event_type, intent_id):
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent"}},
    }).encode()
