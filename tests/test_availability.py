"""Tests for the availability engine."""
from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from petcare.availability import check_slot_bookable, get_available_slots
from petcare.errors import BadRequestError, ConflictError, NotFoundError
from petcare.extensions import db
from petcare.models import Booking

# 08:00 on Monday 2 March 2026 in Asia/Ho_Chi_Minh (UTC+7)
MONDAY_MORNING = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)


def _book(service, customer, day: date, time_slot: str, status: str = "booked") -> Booking:
    booking = Booking(
        booking_number=f"BK_TEST{day:%m%d}{time_slot[:2]}{status[:2]}",
        customer_id=customer.user_id,
        service_id=service.service_id,
        booking_date=day,
        time_slot=time_slot,
        status=status,
        total_amount=service.price,
        payment_method="cash",
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def test_window_covers_fourteen_days(service) -> None:
    slots = get_available_slots(service.service_id, now=MONDAY_MORNING)

    assert len(slots) == 14
    assert min(slots) == "2026-03-02"
    assert max(slots) == "2026-03-15"
    assert len(slots["2026-03-03"]) == 6


def test_unknown_service_is_not_found(app) -> None:
    with pytest.raises(NotFoundError):
        get_available_slots(9999, now=MONDAY_MORNING)


def test_holidays_and_closed_days_are_empty(service) -> None:
    service.excluded_holidays = ["2026-03-04"]
    service.availability = {**service.availability, "sunday": {"isOpen": False}}
    db.session.commit()

    slots = get_available_slots(service.service_id, now=MONDAY_MORNING)

    assert slots["2026-03-04"] == []
    assert slots["2026-03-08"] == []
    assert slots["2026-03-15"] == []
    assert len(slots["2026-03-05"]) == 6


def test_today_respects_lead_time(service) -> None:
    # 09:40 local; first slot must start at or after 10:10
    now = datetime(2026, 3, 2, 2, 40, tzinfo=timezone.utc)

    slots = get_available_slots(service.service_id, now=now)

    assert [s["start_time"] for s in slots["2026-03-02"]] == ["10:30", "11:00", "11:30"]
    assert len(slots["2026-03-03"]) == 6


def test_lead_time_counts_seconds(service) -> None:
    # 09:30:01 local; 10:00 starts 29m59s away and must not be listed
    now = datetime(2026, 3, 2, 2, 30, 1, tzinfo=timezone.utc)

    slots = get_available_slots(service.service_id, now=now)

    assert [s["start_time"] for s in slots["2026-03-02"]] == ["10:30", "11:00", "11:30"]
    with pytest.raises(BadRequestError):
        check_slot_bookable(service, date(2026, 3, 2), "10:00-10:30", now=now)
    for slot in slots["2026-03-02"]:
        check_slot_bookable(service, date(2026, 3, 2), f"{slot['start_time']}-{slot['end_time']}", now=now)


def test_bookings_reduce_availability(service, customer) -> None:
    _book(service, customer, date(2026, 3, 4), "10:00-10:30")
    _book(service, customer, date(2026, 3, 4), "11:00-11:30", status="cancelled")
    _book(service, customer, date(2026, 3, 4), "09:00-09:30", status="checkout")

    slots = get_available_slots(service.service_id, now=MONDAY_MORNING)

    starts = [s["start_time"] for s in slots["2026-03-04"]]
    assert starts == ["09:30", "10:30", "11:00", "11:30"]


def test_new_booking_shows_up_on_next_read(service, customer) -> None:
    before = get_available_slots(service.service_id, now=MONDAY_MORNING)
    _book(service, customer, date(2026, 3, 5), "09:30-10:00")
    after = get_available_slots(service.service_id, now=MONDAY_MORNING)

    assert len(after["2026-03-05"]) == len(before["2026-03-05"]) - 1


def test_check_slot_bookable_rules(service, customer) -> None:
    day = date(2026, 3, 4)
    check_slot_bookable(service, day, "09:00-09:30", now=MONDAY_MORNING)

    with pytest.raises(BadRequestError) as exc:
        check_slot_bookable(service, day, "09:10-09:40", now=MONDAY_MORNING)
    assert exc.value.error == "invalid_time_slot"

    with pytest.raises(BadRequestError) as exc:
        check_slot_bookable(service, date(2026, 3, 2), "08:00-08:30", now=MONDAY_MORNING)
    assert exc.value.error == "invalid_time_slot"

    with pytest.raises(BadRequestError) as exc:
        check_slot_bookable(service, date(2026, 3, 2), "09:00-09:30", now=datetime(2026, 3, 2, 1, 45, tzinfo=timezone.utc))
    assert exc.value.error == "slot_too_soon"

    _book(service, customer, day, "09:00-09:30")
    with pytest.raises(ConflictError):
        check_slot_bookable(service, day, "09:00-09:30", now=MONDAY_MORNING)


def test_check_slot_bookable_closed_day(service) -> None:
    service.excluded_holidays = ["2026-03-04"]
    db.session.commit()

    with pytest.raises(BadRequestError) as exc:
        check_slot_bookable(service, date(2026, 3, 4), "09:00-09:30", now=MONDAY_MORNING)
    assert exc.value.error == "service_closed"
