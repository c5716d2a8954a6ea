"""Human-readable record numbers for bookings, orders and payments."""
from __future__ import annotations

import uuid
from datetime import datetime

from .models import utc_now

BOOKING_PREFIX = "BK"
ORDER_PREFIX = "OD"
PAYMENT_PREFIX = "PM"


def generate_number(prefix: str, now: datetime | None = None) -> str:
    """Return ``<prefix>_<YYYYMMDD><HHMMSS><8 uppercase hex chars>``.

    The UUID suffix keeps numbers distinct between records created in the
    same second; the unique index on each number column backs it up.
    """
    now = now or utc_now()
    suffix = uuid.uuid4().hex[:8].upper()
    return f"{prefix}_{now:%Y%m%d}{now:%H%M%S}{suffix}"


def booking_number(now: datetime | None = None) -> str:
    return generate_number(BOOKING_PREFIX, now)


def order_number(now: datetime | None = None) -> str:
    return generate_number(ORDER_PREFIX, now)


def payment_number(now: datetime | None = None) -> str:
    return generate_number(PAYMENT_PREFIX, now)
