"""pytest configuration and shared fixtures."""
from __future__ import annotations

import itertools
import sys
from datetime import date, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from petcare import create_app  # noqa: E402
from petcare.auth import build_token  # noqa: E402
from petcare.config import TestConfig  # noqa: E402
from petcare.extensions import db  # noqa: E402
from petcare.models import WEEKDAYS, Pet, Product, Service, User  # noqa: E402

OPEN_ALL_WEEK = {
    day: {"isOpen": True, "openTime": "09:00", "closeTime": "12:00", "slotDuration": 30}
    for day in WEEKDAYS
}


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {build_token({'user_id': user.user_id})}"}

    return _headers


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(role: str = "user", name: str | None = None) -> User:
        n = next(counter)
        user = User(name=name or f"{role.title()} {n}", email=f"{role}{n}@example.com", role=role)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("user", "Customer")


@pytest.fixture
def staff(make_user):
    return make_user("staff", "Staff")


@pytest.fixture
def pet(customer):
    pet = Pet(owner_id=customer.user_id, name="Mochi", species="dog")
    db.session.add(pet)
    db.session.commit()
    return pet


@pytest.fixture
def service(app):
    service = Service(
        name="Bath & Brush",
        price=200000,
        duration_minutes=30,
        capacity=1,
        availability=OPEN_ALL_WEEK,
        excluded_holidays=[],
    )
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def make_product(app):
    def _make(name: str = "Chew Toy", price: int = 100000, stock: int = 10, **kwargs) -> Product:
        product = Product(name=name, price=price, stock=stock, **kwargs)
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def future_date():
    """A booking date comfortably outside the cancellation window."""
    return date.today() + timedelta(days=3)


@pytest.fixture
def stripe_mock():
    """Mock Stripe API calls; every intent gets its own id and client secret."""
    with patch("petcare.payments.stripe") as mock_stripe:
        sequence = itertools.count(1)

        def _create_intent(**kwargs):
            n = next(sequence)
            intent = MagicMock()
            intent.id = f"pi_test{n}"
            intent.client_secret = f"pi_test{n}_secret_abc"
            intent.amount = kwargs.get("amount")
            return intent

        mock_stripe.PaymentIntent.create.side_effect = _create_intent

        # Mock Stripe error classes
        mock_stripe.StripeError = Exception

        yield mock_stripe
