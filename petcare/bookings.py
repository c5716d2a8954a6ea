"""Booking lifecycle.

    checkout --> booked --> completed
        |          |
        +----------+--> cancelled

``completed`` and ``cancelled`` are terminal. Card bookings start in
``checkout`` until their payment is confirmed; cash bookings start ``booked``.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import select, update

from . import identifiers, payments
from .availability import check_slot_bookable, slot_start_datetime, to_local
from .errors import BadRequestError, NotFoundError
from .extensions import db
from .models import PAYMENT_METHODS, Booking, Payment, Pet, Service, User
from .notifications import send_notification
from .pagination import apply_sort, int_arg, paginate
from .policy import authorize

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    "checkout": frozenset({"booked", "cancelled"}),
    "booked": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

DEFAULT_CANCELLATION_REASON = "Other"

SORTABLE_FIELDS = {
    "bookingDate": "booking_date",
    "booking_date": "booking_date",
    "createdAt": "created_at",
    "created_at": "created_at",
    "totalAmount": "total_amount",
    "total_amount": "total_amount",
    "status": "status",
    "timeSlot": "time_slot",
    "time_slot": "time_slot",
}


def _transition(booking: Booking, new_status: str, note: str) -> None:
    if new_status not in BOOKING_TRANSITIONS.get(booking.status, frozenset()):
        raise BadRequestError(
            f"Booking cannot move from {booking.status} to {new_status}", error="invalid_transition"
        )
    booking.status = new_status
    booking.append_status(new_status, note)


def _get_or_404(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _parse_date(value, name: str = "booking_date", error: str = "invalid_payload") -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError) as exc:
        raise BadRequestError(f"{name} must be in YYYY-MM-DD format", error=error) from exc


def create_booking(customer: User, payload: dict, now: datetime | None = None) -> tuple[Booking, Payment | None]:
    """Reserve a slot for the customer's pets.

    Capacity is checked again after the row is flushed, against whatever
    other bookings have committed by then; the loser of a race for the last
    spot gets a ConflictError.
    """
    service_id = payload.get("service_id")
    pet_ids = payload.get("pet_ids") or []
    time_slot = (payload.get("time_slot") or "").strip()
    payment_method = payload.get("payment_method") or "credit_card"
    notes = (payload.get("notes") or "").strip() or None

    if not service_id or not pet_ids or not payload.get("booking_date") or not time_slot:
        raise BadRequestError(
            "service_id, pet_ids, booking_date and time_slot are required", error="invalid_payload"
        )
    if not isinstance(pet_ids, list):
        raise BadRequestError("pet_ids must be a list", error="invalid_payload")
    if payment_method not in PAYMENT_METHODS:
        raise BadRequestError("payment_method must be 'credit_card' or 'cash'", error="invalid_payload")
    booking_date = _parse_date(payload.get("booking_date"))

    # Serialise bookings per service on databases that support row locks.
    service = db.session.execute(
        select(Service).where(Service.service_id == service_id).with_for_update()
    ).scalar_one_or_none()
    if service is None:
        raise NotFoundError("Service not found")

    unique_pet_ids = set(pet_ids)
    pets = Pet.query.filter(Pet.pet_id.in_(list(unique_pet_ids)), Pet.owner_id == customer.user_id).all()
    if len(pets) != len(unique_pet_ids):
        raise BadRequestError("One or more pets were not found", error="invalid_pets")

    check_slot_bookable(service, booking_date, time_slot, now)

    status = "checkout" if payment_method == "credit_card" else "booked"
    booking = Booking(
        booking_number=identifiers.booking_number(),
        customer_id=customer.user_id,
        service_id=service.service_id,
        booking_date=booking_date,
        time_slot=time_slot,
        status=status,
        total_amount=len(pets) * service.unit_price,
        payment_method=payment_method,
        payment_status="pending",
        notes=notes,
    )
    booking.pets = pets
    if status == "booked":
        booking.append_status("booked", "Booking placed")

    payment = None
    try:
        db.session.add(booking)
        db.session.flush()
        check_slot_bookable(service, booking_date, time_slot, now, exclude_booking_id=booking.booking_id)

        if payment_method == "credit_card":
            payment = payments.create_payment("booking", booking.booking_id, customer.user_id, booking.total_amount)
            booking.payment_id = payment.payment_id

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Booking %s created for service %s on %s %s (%s)",
        booking.booking_number, service.service_id, booking_date, time_slot, status,
    )
    if status == "booked":
        send_notification(
            user_id=customer.user_id,
            title="Booking confirmed",
            body=f"Your booking for {service.name} has been confirmed.",
            link=f"/bookings/{booking.booking_id}",
        )
    return booking, payment


def get_booking(booking_id: int, user: User) -> Booking:
    booking = _get_or_404(booking_id)
    authorize("booking.read", user, booking.customer_id)
    return booking


def get_booking_by_number(booking_number: str, user: User) -> Booking:
    booking = Booking.query.filter_by(booking_number=booking_number).first()
    if booking is None:
        raise NotFoundError("Booking not found")
    authorize("booking.read", user, booking.customer_id)
    return booking


def list_bookings(user: User, args) -> dict[str, object]:
    """Customers see their own bookings; staff and admins see every committed one."""
    query = Booking.query
    if user.is_staff:
        authorize("booking.list_all", user)
        query = query.filter(Booking.status != "checkout")
    else:
        query = query.filter(Booking.customer_id == user.user_id)

    if args.get("status"):
        query = query.filter(Booking.status == args["status"])
    if args.get("service"):
        query = query.filter(Booking.service_id == int_arg(args, "service"))
    if args.get("date"):
        query = query.filter(Booking.booking_date == _parse_date(args["date"], "date", "invalid_query"))
    if args.get("startDate"):
        query = query.filter(Booking.booking_date >= _parse_date(args["startDate"], "startDate", "invalid_query"))
    if args.get("endDate"):
        query = query.filter(Booking.booking_date <= _parse_date(args["endDate"], "endDate", "invalid_query"))
    if args.get("search"):
        query = query.filter(Booking.booking_number.ilike(f"%{args['search']}%"))

    query = apply_sort(query, Booking, args.get("sortBy"), SORTABLE_FIELDS, "-bookingDate")
    return paginate(query, args["page"], args["limit"])


def cancel_booking(booking_id: int, user: User, reason: str | None = None,
                   now: datetime | None = None) -> tuple[Booking, bool]:
    """Cancel a committed booking.

    Returns ``(booking, cancelled)``; ``cancelled`` is False when the booking
    is still in checkout, which is left untouched since nothing was reserved
    for it yet.
    """
    booking = _get_or_404(booking_id)
    authorize("booking.cancel", user, booking.customer_id)

    if booking.status not in ("checkout", "booked"):
        raise BadRequestError(f"Booking cannot be cancelled when status is {booking.status}")
    if booking.status == "checkout":
        return booking, False

    if not user.is_staff:
        cutoff_hours = current_app.config["CANCEL_CUTOFF_HOURS"]
        starts_at = slot_start_datetime(booking.booking_date, booking.time_slot)
        if starts_at - to_local(now) < timedelta(hours=cutoff_hours):
            raise BadRequestError(
                f"Bookings can only be cancelled at least {cutoff_hours} hours before the appointment time",
                error="cancellation_window_closed",
            )

    reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASON
    _transition(booking, "cancelled", f"Cancelled: {reason}")
    booking.cancelled_by = "admin" if user.is_staff else "customer"
    booking.cancellation_reason = reason
    db.session.commit()

    current_app.logger.info("Booking %s cancelled by %s", booking.booking_number, booking.cancelled_by)
    send_notification(
        user_id=booking.customer_id,
        title="Booking cancelled",
        body=f"Your booking {booking.booking_number} has been cancelled.",
        link=f"/bookings/{booking.booking_id}",
    )
    return booking, True


def complete_booking(booking_id: int, user: User) -> Booking:
    booking = _get_or_404(booking_id)
    authorize(
        "booking.complete", user, booking.customer_id,
        "Only administrators and staff can mark bookings as completed",
    )

    _transition(booking, "completed", "Service completed")
    db.session.execute(
        update(Service)
        .where(Service.service_id == booking.service_id)
        .values(usage_count=Service.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    current_app.logger.info("Booking %s completed", booking.booking_number)
    send_notification(
        user_id=booking.customer_id,
        title="Booking completed",
        body=f"Your booking {booking.booking_number} has been completed.",
        link=f"/bookings/{booking.booking_id}",
    )
    return booking


def update_booking(booking_id: int, user: User, payload: dict, now: datetime | None = None) -> Booking:
    """Apply a status change requested through PATCH /bookings/<id>."""
    new_status = payload.get("status")
    if new_status == "cancelled":
        booking, _ = cancel_booking(booking_id, user, payload.get("cancellation_reason"), now)
        return booking
    if new_status == "completed":
        return complete_booking(booking_id, user)
    raise BadRequestError("status must be 'cancelled' or 'completed'", error="invalid_transition")
