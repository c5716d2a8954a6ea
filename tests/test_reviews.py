"""Tests for verified reviews and rating aggregation."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from petcare import reviews
from petcare.errors import BadRequestError, ForbiddenError
from petcare.extensions import db
from petcare.models import Booking, Order, OrderItem, Pet, Product, Service, utc_now


def _completed_booking(customer, service, status="completed") -> Booking:
    pet = Pet(owner_id=customer.user_id, name="Mochi")
    booking = Booking(
        booking_number=f"BK_REVIEW{customer.user_id:04d}{status[:4]}",
        customer_id=customer.user_id,
        service_id=service.service_id,
        booking_date=utc_now().date(),
        time_slot="09:00-09:30",
        status=status,
        total_amount=service.price,
        payment_method="cash",
        pets=[pet],
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def _delivered_order(customer, product) -> Order:
    order = Order(
        order_number=f"OD_REVIEW{customer.user_id:04d}",
        customer_id=customer.user_id,
        subtotal=product.price,
        total_amount=product.price,
        shipping_address={"line1": "12 Le Loi"},
        status="delivered",
        payment_method="cash",
        checkout_expiration=utc_now() + timedelta(minutes=15),
        items=[OrderItem(product_id=product.product_id, name=product.name, price=product.price,
                         quantity=1, subtotal=product.price)],
    )
    db.session.add(order)
    db.session.commit()
    return order


def _service_review(user, booking, rating, content="Great care") -> dict[str, object]:
    return {
        "target_type": "service",
        "target_id": booking.service_id,
        "source_type": "booking",
        "source_id": booking.booking_id,
        "rating": rating,
        "content": content,
    }


def test_review_requires_completed_booking(client, auth_headers, customer, service) -> None:
    booking = _completed_booking(customer, service, status="booked")

    response = client.post("/reviews", json=_service_review(customer, booking, 5), headers=auth_headers(customer))

    assert response.status_code == 400


def test_review_of_someone_elses_booking_is_forbidden(make_user, customer, service) -> None:
    booking = _completed_booking(customer, service)

    with pytest.raises(ForbiddenError):
        reviews.create_review(make_user(), _service_review(customer, booking, 5))


def test_review_must_match_source(customer, service) -> None:
    booking = _completed_booking(customer, service)
    other_service = Service(name="Nail Trim", price=50000, availability={}, excluded_holidays=[])
    db.session.add(other_service)
    db.session.commit()

    payload = _service_review(customer, booking, 5)
    payload["target_id"] = other_service.service_id

    with pytest.raises(BadRequestError):
        reviews.create_review(customer, payload)


def test_duplicate_review_is_rejected(customer, service) -> None:
    booking = _completed_booking(customer, service)
    reviews.create_review(customer, _service_review(customer, booking, 4))

    with pytest.raises(BadRequestError):
        reviews.create_review(customer, _service_review(customer, booking, 5))


def test_rating_is_recomputed_from_visible_reviews(client, auth_headers, make_user, service) -> None:
    users = [make_user() for _ in range(3)]
    for user, rating in zip(users, (3, 5, 5)):
        booking = _completed_booking(user, service)
        response = client.post("/reviews", json=_service_review(user, booking, rating), headers=auth_headers(user))
        assert response.status_code == 201

        if user is users[1]:
            summary = db.session.get(Service, service.service_id)
            assert summary.rating_average == 4.0
            assert summary.rating_count == 2

    service = db.session.get(Service, service.service_id)
    assert service.rating_count == 3
    assert service.rating_total_stars == 13
    assert service.rating_average == 4.3
    assert len(service.recent_review_ids) == 3


def test_average_rounds_halves_up(client, auth_headers, make_user, service) -> None:
    for rating in (5, 5, 5, 2):
        user = make_user()
        booking = _completed_booking(user, service)
        response = client.post("/reviews", json=_service_review(user, booking, rating), headers=auth_headers(user))
        assert response.status_code == 201

    service = db.session.get(Service, service.service_id)
    assert service.rating_total_stars == 17
    assert service.rating_count == 4
    assert service.rating_average == 4.3


@pytest.mark.parametrize(
    "total, count, expected",
    [(17, 4, "4.3"), (9, 2, "4.5"), (13, 3, "4.3"), (11, 3, "3.7"), (0, 0, "0")],
)
def test_average_rating(total, count, expected) -> None:
    assert reviews.average_rating(total, count) == Decimal(expected)


def test_recent_reviews_are_capped(make_user, service) -> None:
    created = []
    for _ in range(4):
        user = make_user()
        created.append(reviews.create_review(user, _service_review(user, _completed_booking(user, service), 4)))

    service = db.session.get(Service, service.service_id)
    assert len(service.recent_review_ids) == 3
    assert created[0].review_id not in service.recent_review_ids


def test_hiding_and_deleting_reviews_update_summary(client, auth_headers, make_user, staff, service) -> None:
    first_user, second_user = make_user(), make_user()
    first = reviews.create_review(first_user, _service_review(first_user, _completed_booking(first_user, service), 2))
    second = reviews.create_review(second_user, _service_review(second_user, _completed_booking(second_user, service), 4))

    forbidden = client.patch(
        f"/reviews/{first.review_id}/visibility", json={"is_visible": False}, headers=auth_headers(first_user)
    )
    assert forbidden.status_code == 403

    hidden = client.patch(
        f"/reviews/{first.review_id}/visibility", json={"is_visible": False}, headers=auth_headers(staff)
    )
    assert hidden.status_code == 200
    summary = db.session.get(Service, service.service_id)
    assert summary.rating_count == 1
    assert summary.rating_average == 4.0

    listing = client.get(f"/reviews?targetType=service&targetId={service.service_id}").get_json()
    assert [r["id"] for r in listing["results"]] == [second.review_id]

    assert client.delete(f"/reviews/{second.review_id}", headers=auth_headers(first_user)).status_code == 403
    assert client.delete(f"/reviews/{second.review_id}", headers=auth_headers(second_user)).status_code == 200
    summary = db.session.get(Service, service.service_id)
    assert summary.rating_count == 0
    assert summary.rating_average == 0
    assert summary.recent_review_ids == []


def test_product_review_from_delivered_order(client, auth_headers, customer, make_product) -> None:
    product = make_product("Dry Food", price=120000)
    order = _delivered_order(customer, product)
    payload = {
        "target_type": "product",
        "target_id": product.product_id,
        "source_type": "order",
        "source_id": order.order_id,
        "rating": 5,
        "content": "My dog loves it",
    }

    response = client.post("/reviews", json=payload, headers=auth_headers(customer))

    assert response.status_code == 201
    assert db.session.get(Product, product.product_id).rating_average == 5.0
    mine = client.get("/orders/my-orders", headers=auth_headers(customer)).get_json()
    assert mine["results"][0]["is_rated"] is True


def test_unknown_target_is_404(client, auth_headers, customer) -> None:
    payload = {
        "target_type": "product",
        "target_id": 404,
        "source_type": "order",
        "source_id": 1,
        "rating": 5,
        "content": "?",
    }

    assert client.post("/reviews", json=payload, headers=auth_headers(customer)).status_code == 404


def test_rating_must_be_in_range(customer, service) -> None:
    booking = _completed_booking(customer, service)

    with pytest.raises(BadRequestError):
        reviews.create_review(customer, _service_review(customer, booking, 6))
