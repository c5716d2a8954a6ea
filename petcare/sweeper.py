"""Reclaim checkouts whose payment window has passed.

A booking left in checkout for longer than BOOKING_CHECKOUT_TTL_MINUTES, or
an order in checkout past its ``checkout_expiration``, is deleted together
with its payments; an order's stock is given back first. Each record is
handled in its own transaction, and the deletes only match rows still in
checkout, so records confirmed, cancelled or removed by a concurrent request
are skipped.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from celery import shared_task
from flask import current_app
from sqlalchemy import delete, select

from . import inventory
from .extensions import db
from .models import Booking, Order, OrderItem, Payment, booking_pets, utc_now


def _delete_payments(target_type: str, target_id: int) -> None:
    db.session.execute(
        delete(Payment)
        .where(Payment.target_type == target_type, Payment.target_id == target_id)
        .execution_options(synchronize_session=False)
    )


def _sweep_booking(booking_id: int) -> bool:
    db.session.execute(booking_pets.delete().where(booking_pets.c.booking_id == booking_id))
    result = db.session.execute(
        delete(Booking)
        .where(Booking.booking_id == booking_id, Booking.status == "checkout")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        return False
    _delete_payments("booking", booking_id)
    db.session.commit()
    return True


def _sweep_order(order_id: int) -> bool:
    lines = db.session.execute(
        select(OrderItem.product_id, OrderItem.quantity).where(OrderItem.order_id == order_id)
    ).all()
    db.session.execute(
        delete(OrderItem).where(OrderItem.order_id == order_id).execution_options(synchronize_session=False)
    )
    result = db.session.execute(
        delete(Order)
        .where(Order.order_id == order_id, Order.status == "checkout")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        return False
    inventory.release([(product_id, quantity) for product_id, quantity in lines])
    _delete_payments("order", order_id)
    db.session.commit()
    return True


def sweep_expired_checkouts(now: datetime | None = None) -> dict[str, int]:
    """Run one sweep and return how many bookings and orders were removed."""
    now = now or utc_now()
    booking_cutoff = now - timedelta(minutes=current_app.config["BOOKING_CHECKOUT_TTL_MINUTES"])

    booking_ids = db.session.scalars(
        select(Booking.booking_id).where(Booking.status == "checkout", Booking.created_at < booking_cutoff)
    ).all()
    order_ids = db.session.scalars(
        select(Order.order_id).where(Order.status == "checkout", Order.checkout_expiration < now)
    ).all()

    removed = {"bookings": 0, "orders": 0}
    for booking_id in booking_ids:
        try:
            if _sweep_booking(booking_id):
                removed["bookings"] += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to sweep expired booking %s", booking_id)

    for order_id in order_ids:
        try:
            if _sweep_order(order_id):
                removed["orders"] += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to sweep expired order %s", order_id)

    # Drop identity-map copies of the rows deleted above.
    db.session.expire_all()

    if removed["bookings"] or removed["orders"]:
        current_app.logger.info(
            "Removed %s expired bookings and %s expired orders", removed["bookings"], removed["orders"]
        )
    return removed


@shared_task(name="petcare.sweep_expired_checkouts")
def sweep_expired_checkouts_task() -> dict[str, int]:
    """Periodic entry point scheduled by Celery beat."""
    return sweep_expired_checkouts()
