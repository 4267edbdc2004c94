"""Pytest configuration: in-memory Mongo, fake gateway/mailer, app and client fixtures."""

import os
import tempfile

# Keep the module-level app in main.py away from the working tree.
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="store-uploads-"))

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import CATEGORIES, PRODUCTS, USERS, create_document
from errors import UpstreamError
from main import create_app
from security import hash_password
from settings import Settings

PASSWORD = "secret123"


class FakeGateway:
    """Stands in for RazorpayGateway; records every order it was asked to create."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_order(self, amount, currency, receipt):
        self.calls.append({"amount": amount, "currency": currency, "receipt": receipt})
        if self.fail:
            raise UpstreamError("Could not reach the payment gateway")
        return {"id": f"order_rzp_{len(self.calls)}", "amount": amount, "currency": currency}


class FakeMailer:
    def __init__(self):
        self.order_confirmations = []
        self.password_resets = []

    def send_order_confirmation(self, email, order):
        self.order_confirmations.append((email, order))
        return True

    def send_password_reset(self, email, token, name=None):
        self.password_resets.append((email, token))
        return True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        session_secret="test-session-secret",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        upload_dir=str(tmp_path / "uploads"),
        rate_limit_max=10_000,
        free_shipping_threshold=999,
        shipping_fee=50,
    )


@pytest.fixture
def db():
    database = mongomock.MongoClient(tz_aware=True)["store_test"]
    database[PRODUCTS].create_index("slug", unique=True)
    database[CATEGORIES].create_index("slug", unique=True)
    database[USERS].create_index("email", unique=True)
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(settings, db, gateway, mailer):
    return create_app(settings=settings, db=db, gateway=gateway, mailer=mailer)


@pytest.fixture
def client(app):
    return TestClient(app)


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def make_category(db):
    def _make(name="Bedsheets", slug=None):
        category_id = create_document(db, CATEGORIES, {"name": name, "slug": slug or name.lower()})
        return category_id
    return _make


@pytest.fixture
def make_product(db, make_category):
    default_category = {}

    def _make(name="Cotton Bedsheet", price=1000, discounted_price=900, category=None, **extra):
        if category is None:
            if "id" not in default_category:
                default_category["id"] = make_category()
            category = default_category["id"]
        doc = {
            "name": name,
            "slug": name.lower().replace(" ", "-"),
            "description": f"{name} description",
            "short_description": name,
            "price": price,
            "discounted_price": discounted_price,
            "category": category,
            "images": [],
            "stock": {"available": True, "quantity": 10},
            "attributes": {"size": ["Double", "King"], "color": ["White", "Blue"]},
            "rating": 0,
            "reviews": [],
            "tags": [],
            "is_featured": False,
        }
        doc.update(extra)
        return create_document(db, PRODUCTS, doc)
    return _make


@pytest.fixture
def make_user(db):
    def _make(email="customer@example.com", role="customer", name="Asha", addresses=None):
        return create_document(db, USERS, {
            "name": name,
            "email": email,
            "password_hash": hash_password(PASSWORD),
            "role": role,
            "addresses": addresses if addresses is not None else [{
                "id": "addr1", "name": name, "street": "12 MG Road", "city": "Pune",
                "state": "MH", "zip_code": "411001", "phone": "9999999999",
            }],
            "wishlist": [],
        })
    return _make


def csrf_token(client):
    return client.get("/csrf-token").json()["csrf_token"]


def login(client, email="customer@example.com", password=PASSWORD):
    """Log in through the form and return the fresh CSRF token of the new session."""
    response = client.post(
        "/auth/login",
        data={"email": email, "password": password, "csrf_token": csrf_token(client)},
        follow_redirects=False,
    )
    assert response.status_code == 303, response.text
    assert response.headers["location"] != "/auth/login", "login rejected"
    return csrf_token(client)
