"""Tests for the expired-checkout sweeper."""
from __future__ import annotations

from datetime import timedelta

from petcare import bookings, orders, payments
from petcare.extensions import db
from petcare.models import Booking, Order, OrderItem, Payment, Product, utc_now
from petcare.sweeper import sweep_expired_checkouts

ADDRESS = {"name": "Customer", "line1": "12 Le Loi", "city": "Ho Chi Minh City"}


def _card_order(customer, product, quantity=2, now=None) -> tuple[Order, Payment]:
    return orders.create_order(
        customer,
        {
            "items": [{"product_id": product.product_id, "quantity": quantity}],
            "shipping_address": ADDRESS,
            "payment_method": "credit_card",
        },
        now=now,
    )


def _card_booking(customer, pet, service, day, time_slot="09:00-09:30") -> tuple[Booking, Payment]:
    return bookings.create_booking(
        customer,
        {
            "service_id": service.service_id,
            "pet_ids": [pet.pet_id],
            "booking_date": day.isoformat(),
            "time_slot": time_slot,
            "payment_method": "credit_card",
        },
    )


def _exists(model, **filters) -> bool:
    return db.session.query(model).filter_by(**filters).count() > 0


def test_expired_order_is_removed_and_stock_restored(customer, make_product, stripe_mock) -> None:
    food = make_product("Dry Food", stock=5)
    order, payment = _card_order(customer, food, now=utc_now() - timedelta(minutes=16))
    order_id, payment_id = order.order_id, payment.payment_id

    removed = sweep_expired_checkouts()

    assert removed == {"bookings": 0, "orders": 1}
    assert not _exists(Order, order_id=order_id)
    assert not _exists(OrderItem, order_id=order_id)
    assert not _exists(Payment, payment_id=payment_id)
    assert db.session.get(Product, food.product_id).stock == 5


def test_order_within_window_is_kept(customer, make_product, stripe_mock) -> None:
    food = make_product("Dry Food", stock=5)
    order, _ = _card_order(customer, food)

    assert sweep_expired_checkouts() == {"bookings": 0, "orders": 0}
    assert _exists(Order, order_id=order.order_id)
    assert db.session.get(Product, food.product_id).stock == 3


def test_expired_booking_is_removed(customer, pet, service, future_date, stripe_mock) -> None:
    booking, payment = _card_booking(customer, pet, service, future_date)
    booking_id, payment_id = booking.booking_id, payment.payment_id

    assert sweep_expired_checkouts(now=utc_now() + timedelta(minutes=4))["bookings"] == 0

    removed = sweep_expired_checkouts(now=utc_now() + timedelta(minutes=6))

    assert removed["bookings"] == 1
    assert not _exists(Booking, booking_id=booking_id)
    assert not _exists(Payment, payment_id=payment_id)


def test_confirmed_checkouts_survive(customer, pet, service, future_date, make_product, stripe_mock) -> None:
    food = make_product("Dry Food", stock=5)
    order, order_payment = _card_order(customer, food)
    booking, booking_payment = _card_booking(customer, pet, service, future_date)
    payments.confirm_payment(order_payment.client_secret, customer)
    payments.confirm_payment(booking_payment.client_secret, customer)

    removed = sweep_expired_checkouts(now=utc_now() + timedelta(hours=1))

    assert removed == {"bookings": 0, "orders": 0}
    assert db.session.get(Order, order.order_id).status == "pending"
    assert db.session.get(Booking, booking.booking_id).status == "booked"
    assert db.session.get(Product, food.product_id).stock == 3


def test_sweep_is_idempotent(customer, make_product, stripe_mock) -> None:
    food = make_product("Dry Food", stock=5)
    _card_order(customer, food, now=utc_now() - timedelta(minutes=30))

    first = sweep_expired_checkouts()
    second = sweep_expired_checkouts()

    assert first["orders"] == 1
    assert second == {"bookings": 0, "orders": 0}
    assert db.session.get(Product, food.product_id).stock == 5


def test_swept_slot_is_bookable_again(customer, pet, service, future_date, stripe_mock) -> None:
    _card_booking(customer, pet, service, future_date)
    sweep_expired_checkouts(now=utc_now() + timedelta(minutes=10))

    booking, _ = _card_booking(customer, pet, service, future_date)

    assert booking.status == "checkout"


def test_cli_command_runs_a_sweep(app, customer, make_product, stripe_mock) -> None:
    food = make_product("Dry Food", stock=5)
    _card_order(customer, food, now=utc_now() - timedelta(minutes=20))

    result = app.test_cli_runner().invoke(args=["sweep-checkouts"])

    assert "Removed 0 bookings and 1 orders" in result.output
    assert db.session.get(Product, food.product_id).stock == 5


def test_celery_task_is_scheduled(app) -> None:
    celery_app = app.extensions["celery"]
    entry = celery_app.conf.beat_schedule["sweep-expired-checkouts"]

    assert entry["task"] == "petcare.sweep_expired_checkouts"
    assert entry["schedule"] == float(app.config["SWEEP_INTERVAL_SECONDS"])
    assert "petcare.sweep_expired_checkouts" in celery_app.tasks
