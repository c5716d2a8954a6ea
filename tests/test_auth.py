"""Tests for bearer-token checks and the authorization policy."""
from __future__ import annotations

import pytest

from petcare.auth import build_token
from petcare.errors import ForbiddenError
from petcare.identifiers import booking_number, generate_number
from petcare.policy import POLICY, authorize, is_allowed


def test_rejects_missing_and_malformed_tokens(client) -> None:
    assert client.get("/bookings").status_code == 401
    assert client.get("/bookings", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/bookings", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_rejects_token_for_unknown_user(client) -> None:
    headers = {"Authorization": f"Bearer {build_token({'user_id': 999})}"}

    response = client.get("/bookings", headers=headers)

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_rejects_expired_token(app, client, customer, auth_headers) -> None:
    app.config["AUTH_TOKEN_MAX_AGE_SECONDS"] = -1

    response = client.get("/bookings", headers=auth_headers(customer))

    assert response.status_code == 401


def test_accepts_valid_token(client, customer, auth_headers) -> None:
    response = client.get("/bookings", headers=auth_headers(customer))

    assert response.status_code == 200
    assert response.get_json()["results"] == []


def test_owner_rules(customer, staff, make_user) -> None:
    other = make_user()

    assert is_allowed("booking.read", customer, customer.user_id)
    assert not is_allowed("booking.read", other, customer.user_id)
    assert is_allowed("booking.read", staff, customer.user_id)
    assert not is_allowed("booking.complete", customer, customer.user_id)
    # Payments are confirmed by the paying customer only, whatever the role.
    assert not is_allowed("payment.confirm", staff, customer.user_id)


def test_unknown_action_is_denied(customer) -> None:
    assert ("order.refund", "user") not in POLICY
    with pytest.raises(ForbiddenError):
        authorize("order.refund", customer, customer.user_id)


def test_record_numbers(app) -> None:
    number = booking_number()

    assert number.startswith("BK_")
    assert len(number) == len("BK_") + 14 + 8
    assert number[-8:] == number[-8:].upper()
    assert generate_number("OD") != generate_number("OD")
