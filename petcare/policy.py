"""Authorization policy for lifecycle actions.

Each ``(action, role)`` pair maps to one rule:

* ``ALLOW`` - the role may perform the action on any record
* ``OWNER`` - only on records the caller owns
* ``DENY``  - never

Pairs missing from the table are denied.
"""
from __future__ import annotations

from .errors import ForbiddenError
from .models import User

ALLOW = "allow"
OWNER = "owner"
DENY = "deny"

POLICY: dict[tuple[str, str], str] = {
    # Bookings
    ("booking.read", "user"): OWNER,
    ("booking.read", "staff"): ALLOW,
    ("booking.read", "admin"): ALLOW,
    ("booking.list_all", "staff"): ALLOW,
    ("booking.list_all", "admin"): ALLOW,
    ("booking.cancel", "user"): OWNER,
    ("booking.cancel", "staff"): ALLOW,
    ("booking.cancel", "admin"): ALLOW,
    ("booking.complete", "user"): DENY,
    ("booking.complete", "staff"): ALLOW,
    ("booking.complete", "admin"): ALLOW,
    # Orders
    ("order.read", "user"): OWNER,
    ("order.read", "staff"): ALLOW,
    ("order.read", "admin"): ALLOW,
    ("order.list_all", "staff"): ALLOW,
    ("order.list_all", "admin"): ALLOW,
    ("order.update_status", "staff"): ALLOW,
    ("order.update_status", "admin"): ALLOW,
    ("order.cancel", "user"): OWNER,
    ("order.cancel", "staff"): ALLOW,
    ("order.cancel", "admin"): ALLOW,
    ("order.confirm_delivery", "user"): OWNER,
    ("order.confirm_delivery", "staff"): OWNER,
    ("order.confirm_delivery", "admin"): OWNER,
    # Payments belong to the paying customer only
    ("payment.create", "user"): OWNER,
    ("payment.create", "staff"): OWNER,
    ("payment.create", "admin"): OWNER,
    ("payment.read", "user"): OWNER,
    ("payment.read", "staff"): OWNER,
    ("payment.read", "admin"): OWNER,
    ("payment.confirm", "user"): OWNER,
    ("payment.confirm", "staff"): OWNER,
    ("payment.confirm", "admin"): OWNER,
    ("payment.cancel", "user"): OWNER,
    ("payment.cancel", "staff"): OWNER,
    ("payment.cancel", "admin"): OWNER,
    # Reviews
    ("review.delete", "user"): OWNER,
    ("review.delete", "staff"): ALLOW,
    ("review.delete", "admin"): ALLOW,
    ("review.moderate", "staff"): ALLOW,
    ("review.moderate", "admin"): ALLOW,
}


def is_allowed(action: str, user: User, owner_id: int | None = None) -> bool:
    rule = POLICY.get((action, user.role), DENY)
    if rule == ALLOW:
        return True
    if rule == OWNER:
        return owner_id is not None and owner_id == user.user_id
    return False


def authorize(action: str, user: User, owner_id: int | None = None, message: str = "Access denied") -> None:
    """Raise ForbiddenError unless ``user`` may perform ``action``."""
    if not is_allowed(action, user, owner_id):
        raise ForbiddenError(message)
