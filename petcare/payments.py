"""Payment records and their coupling to order/booking lifecycles.

The only network dependency in the core is the Stripe PaymentIntent call in
``create_intent``. It runs with a bounded timeout and without retries, since
retrying intent creation could charge twice; any failure surfaces as an
InternalError.
"""
from __future__ import annotations

import stripe
from flask import current_app

from . import identifiers
from .errors import BadRequestError, InternalError, NotFoundError
from .extensions import db
from .models import Booking, Order, Payment, User
from .notifications import send_notification
from .pagination import paginate
from .policy import authorize


def create_intent(amount: int, currency: str, metadata: dict[str, str]) -> dict[str, str]:
    """Ask Stripe for a PaymentIntent and return its id and client secret."""
    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        current_app.logger.warning("Stripe secret key not configured")
        raise InternalError("Payments are not currently available. Please contact support.", error="payment_error")

    stripe.api_key = stripe_key
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(
        timeout=current_app.config["PAYMENT_GATEWAY_TIMEOUT_SECONDS"]
    )

    try:
        intent = stripe.PaymentIntent.create(
            amount=int(amount),
            currency=currency,
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe API error while creating payment intent", exc_info=exc)
        raise InternalError("An error occurred while processing the payment.", error="payment_error") from exc

    if not getattr(intent, "client_secret", None):
        raise InternalError("Payment intent creation failed", error="payment_error")
    return {"id": intent.id, "client_secret": intent.client_secret}


def create_payment(
    target_type: str,
    target_id: int,
    customer_id: int,
    amount: int,
    method: str = "credit_card",
) -> Payment:
    """Persist a pending payment and open a gateway handshake for it.

    Runs inside the caller's transaction; the caller links the target and
    commits, or rolls back on error so no target points at a missing payment.
    """
    currency = current_app.config["PAYMENT_CURRENCY"]
    payment = Payment(
        payment_number=identifiers.payment_number(),
        target_type=target_type,
        target_id=target_id,
        customer_id=customer_id,
        amount=amount,
        currency=currency,
        method=method,
        provider="stripe",
        status="pending",
    )
    db.session.add(payment)
    db.session.flush()

    intent = create_intent(
        amount,
        currency,
        metadata={
            "target_type": target_type,
            "target_id": str(target_id),
            "customer_id": str(customer_id),
            "payment_id": str(payment.payment_id),
        },
    )
    payment.gateway_intent_id = intent["id"]
    payment.client_secret = intent["client_secret"]
    db.session.flush()

    current_app.logger.info(
        "Created payment %s for %s %s (amount %s)", payment.payment_number, target_type, target_id, amount
    )
    return payment


def _load_target(target_type: str, target_id: int) -> Order | Booking:
    if target_type == "order":
        target = db.session.get(Order, target_id)
        label = "Order"
    elif target_type == "booking":
        target = db.session.get(Booking, target_id)
        label = "Booking"
    else:
        raise BadRequestError("targetType must be 'order' or 'booking'", error="invalid_payload")
    if target is None:
        raise NotFoundError(f"{label} not found")
    return target


def start_payment(user: User, target_type: str, target_id: int) -> tuple[Order | Booking, Payment]:
    """Open a new card payment for a caller's own order or booking in checkout.

    A previous pending payment on the target is replaced.
    """
    target = _load_target(target_type, target_id)
    authorize("payment.create", user, target.customer_id, "You are not authorized to pay for this item")

    if target.payment_status == "paid":
        raise BadRequestError(f"{target_type.capitalize()} is already paid")
    if target.status != "checkout":
        raise BadRequestError(f"Only {target_type}s awaiting payment can be paid by card")

    try:
        previous = target.payment
        target.payment = None
        if previous is not None and previous.status != "completed":
            db.session.delete(previous)
        db.session.flush()

        payment = create_payment(target_type, target_id, user.user_id, target.total_amount)
        target.payment = payment
        target.payment_method = "credit_card"
        target.payment_status = "pending"
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return target, payment


def _find_by_client_secret(client_secret: str | None) -> Payment:
    payment = Payment.query.filter_by(client_secret=client_secret).first() if client_secret else None
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def confirm_payment(client_secret: str, user: User) -> Payment:
    """Mark the payment completed and move its target out of checkout."""
    payment = _find_by_client_secret(client_secret)
    authorize("payment.confirm", user, payment.customer_id)

    if payment.status == "completed":
        return payment

    payment.status = "completed"
    target = payment.resolve_target()
    confirmed_booking = None

    if target is None:
        current_app.logger.warning(
            "Payment %s confirmed but its %s %s no longer exists",
            payment.payment_number, payment.target_type, payment.target_id,
        )
    elif payment.target_type == "order":
        target.payment_status = "paid"
        if target.status == "checkout":
            target.status = "pending"
            target.append_status("pending", "Payment received, order placed")
    elif payment.target_type == "booking":
        target.payment_status = "paid"
        if target.status == "checkout":
            target.status = "booked"
            target.append_status("booked", "Payment received, booking confirmed")
            confirmed_booking = target

    db.session.commit()
    current_app.logger.info("Payment %s confirmed", payment.payment_number)

    if confirmed_booking is not None:
        send_notification(
            user_id=confirmed_booking.customer_id,
            title="Booking confirmed",
            body=f"Your booking {confirmed_booking.booking_number} has been confirmed.",
            link=f"/bookings/{confirmed_booking.booking_id}",
        )
    return payment


def cancel_payment(client_secret: str, user: User) -> Payment:
    """Mark the payment failed; the target stays in checkout until swept."""
    payment = _find_by_client_secret(client_secret)
    authorize("payment.cancel", user, payment.customer_id)

    if payment.status == "completed":
        raise BadRequestError("Payment already confirmed")

    payment.status = "failed"
    target = payment.resolve_target()
    if target is not None:
        target.payment_status = "failed"

    db.session.commit()
    current_app.logger.info("Payment %s cancelled by user %s", payment.payment_number, user.user_id)
    return payment


def get_payment(payment_id: int, user: User) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    authorize("payment.read", user, payment.customer_id)
    return payment


def list_payments(user: User, status: str | None = None, target_type: str | None = None,
                  page: int = 1, limit: int | None = None) -> dict[str, object]:
    query = Payment.query.filter(Payment.customer_id == user.user_id)
    if status:
        query = query.filter(Payment.status == status)
    if target_type:
        query = query.filter(Payment.target_type == target_type)
    return paginate(query.order_by(Payment.created_at.desc()), page, limit)
