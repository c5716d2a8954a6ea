"""Bookable slots for a service, derived from its weekly template and live bookings.

Nothing is cached: every call reads the current bookings, so a booking
committed by another request shows up on the next call.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import current_app

from .errors import BadRequestError, ConflictError, InternalError, NotFoundError
from .extensions import db
from .models import SLOT_DURATIONS, WEEKDAYS, Booking, Service, utc_now
from .scheduling import apply_reservations, calculate_slots, generate_slots, parse_time_slot, time_to_minutes


def service_timezone() -> ZoneInfo:
    return ZoneInfo(current_app.config["SERVICE_TIMEZONE"])


def to_local(now: datetime | None = None) -> datetime:
    """Express ``now`` (naive values are taken as UTC) in the service timezone."""
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(service_timezone())


def slot_start_datetime(booking_date: date, time_slot: str) -> datetime:
    """Timezone-aware start of a booked slot."""
    start, _ = parse_time_slot(time_slot)
    naive = datetime.combine(booking_date, datetime.min.time()) + timedelta(minutes=start)
    return naive.replace(tzinfo=service_timezone())


def _day_template(service: Service, day: date) -> dict | None:
    """Opening template for ``day`` or None if the service is closed then."""
    if day.isoformat() in set(service.excluded_holidays or []):
        return None
    template = (service.availability or {}).get(WEEKDAYS[day.weekday()])
    if not template or not template.get("isOpen"):
        return None
    return template


def _slot_parameters(service: Service, template: dict) -> tuple[str, str, int, int, int]:
    slot_duration = int(template.get("slotDuration") or 30)
    if slot_duration not in SLOT_DURATIONS:
        raise InternalError(f"Service {service.service_id} has an unsupported slot duration {slot_duration}")
    service_duration = int(service.duration_minutes or slot_duration)
    capacity = int(service.capacity or 1)
    return template.get("openTime"), template.get("closeTime"), slot_duration, service_duration, capacity


def _reservations_by_day(
    service_id: int,
    first_day: date,
    last_day: date,
    exclude_booking_id: int | None = None,
) -> dict[str, list[tuple[int, int]]]:
    query = Booking.query.filter(
        Booking.service_id == service_id,
        Booking.booking_date >= first_day,
        Booking.booking_date <= last_day,
        Booking.status != "cancelled",
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.booking_id != exclude_booking_id)

    reserved: dict[str, list[tuple[int, int]]] = defaultdict(list)
    for booking in query.all():
        try:
            reserved[booking.booking_date.isoformat()].append(parse_time_slot(booking.time_slot))
        except ValueError:
            current_app.logger.warning(
                "Ignoring booking %s with malformed time slot %r", booking.booking_id, booking.time_slot
            )
    return reserved


def get_available_slots(service_id: int, now: datetime | None = None) -> dict[str, list[dict[str, object]]]:
    """Map each ISO date of the booking window to its open slots."""
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")

    local_now = to_local(now)
    window_days = current_app.config["AVAILABILITY_WINDOW_DAYS"]
    lead_minutes = current_app.config["BOOKING_MIN_LEAD_MINUTES"]
    first_day = local_now.date()
    last_day = first_day + timedelta(days=window_days - 1)

    reserved = _reservations_by_day(service.service_id, first_day, last_day)
    earliest_start = local_now + timedelta(minutes=lead_minutes)

    available: dict[str, list[dict[str, object]]] = {}
    for offset in range(window_days):
        day = first_day + timedelta(days=offset)
        key = day.isoformat()
        template = _day_template(service, day)
        if template is None:
            available[key] = []
            continue

        try:
            slots = calculate_slots(*_slot_parameters(service, template), reserved.get(key, ()))
        except ValueError as exc:
            raise InternalError(f"Service {service.service_id} has an invalid opening template: {exc}") from exc

        if offset == 0:
            slots = [
                s for s in slots
                if slot_start_datetime(day, f"{s['start_time']}-{s['end_time']}") >= earliest_start
            ]
        available[key] = slots

    return available


def check_slot_bookable(
    service: Service,
    booking_date: date,
    time_slot: str,
    now: datetime | None = None,
    exclude_booking_id: int | None = None,
) -> None:
    """Raise unless ``time_slot`` on ``booking_date`` can take one more booking.

    BadRequestError for a closed day, a slot the template does not offer, or
    a start inside the lead time; ConflictError when the slot is full.
    """
    try:
        start, end = parse_time_slot(time_slot)
    except ValueError as exc:
        raise BadRequestError(str(exc), error="invalid_time_slot") from exc

    template = _day_template(service, booking_date)
    if template is None:
        raise BadRequestError("Service is not available on this date", error="service_closed")

    try:
        candidates = generate_slots(*_slot_parameters(service, template))
    except ValueError as exc:
        raise InternalError(f"Service {service.service_id} has an invalid opening template: {exc}") from exc

    requested = [
        slot for slot in candidates
        if time_to_minutes(slot["start_time"]) == start and time_to_minutes(slot["end_time"]) == end
    ]
    if not requested:
        raise BadRequestError("Requested time slot is not offered by this service", error="invalid_time_slot")

    lead = timedelta(minutes=current_app.config["BOOKING_MIN_LEAD_MINUTES"])
    if slot_start_datetime(booking_date, time_slot) < to_local(now) + lead:
        raise BadRequestError("Time slot is in the past or starts too soon", error="slot_too_soon")

    reserved = _reservations_by_day(service.service_id, booking_date, booking_date, exclude_booking_id)
    if not apply_reservations(requested, reserved.get(booking_date.isoformat(), ())):
        raise ConflictError("Time slot is fully booked")
