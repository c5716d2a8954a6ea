"""HTTP routes for bookings, service time slots and payments."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import bookings, payments
from .auth import login_required
from .availability import get_available_slots
from .errors import BadRequestError
from .extensions import db
from .pagination import parse_page_args

bp = Blueprint("api", __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequestError("Request body must be a JSON object", error="invalid_payload")
    return data


def _list_args() -> dict[str, object]:
    page, limit = parse_page_args(request.args)
    return {**request.args.to_dict(), "page": page, "limit": limit}


def _payment_payload(payment) -> dict[str, object] | None:
    if payment is None:
        return None
    return {"payment_id": payment.payment_id, "client_secret": payment.client_secret}


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.get("/services/<int:service_id>/timeslots")
def list_time_slots(service_id: int) -> tuple[dict[str, object], int]:
    """Return open slots per day for the next two weeks.
    ---
    tags:
      - Services
    parameters:
      - name: service_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Map of ISO date to available slots
      404:
        description: Service not found
    """
    return jsonify({"available_time_slots": get_available_slots(service_id)}), 200


@bp.post("/bookings")
@login_required
def create_booking() -> tuple[dict[str, object], int]:
    """Book a service time slot for one or more pets.
    ---
    tags:
      - Bookings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [service_id, pet_ids, booking_date, time_slot]
          properties:
            service_id:
              type: integer
            pet_ids:
              type: array
              items:
                type: integer
            booking_date:
              type: string
              example: "2026-03-02"
            time_slot:
              type: string
              example: "09:00-09:30"
            payment_method:
              type: string
              enum: [credit_card, cash]
            notes:
              type: string
    responses:
      201:
        description: Booking created
      400:
        description: Invalid payload, closed day or slot too soon
      404:
        description: Service not found
      409:
        description: Time slot is fully booked
    """
    booking, payment = bookings.create_booking(g.user, _json_body())
    return jsonify({"booking": booking.to_dict(), "payment": _payment_payload(payment)}), 201


@bp.get("/bookings")
@login_required
def list_bookings() -> tuple[dict[str, object], int]:
    """List bookings visible to the caller.
    ---
    tags:
      - Bookings
    parameters:
      - name: status
        in: query
        type: string
      - name: service
        in: query
        type: integer
      - name: date
        in: query
        type: string
      - name: startDate
        in: query
        type: string
        description: First booking date to include (YYYY-MM-DD)
      - name: endDate
        in: query
        type: string
        description: Last booking date to include (YYYY-MM-DD)
      - name: search
        in: query
        type: string
        description: Partial booking number
      - name: sortBy
        in: query
        type: string
        description: Comma separated fields, prefix with - for descending
      - name: page
        in: query
        type: integer
      - name: limit
        in: query
        type: integer
    """
    return jsonify(bookings.list_bookings(g.user, _list_args())), 200


@bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"booking": bookings.get_booking(booking_id, g.user).to_dict()}), 200


@bp.get("/bookings/number/<string:booking_number>")
@login_required
def get_booking_by_number(booking_number: str) -> tuple[dict[str, object], int]:
    booking = bookings.get_booking_by_number(booking_number, g.user)
    return jsonify({"booking": booking.to_dict()}), 200


@bp.patch("/bookings/<int:booking_id>")
@login_required
def update_booking(booking_id: int) -> tuple[dict[str, object], int]:
    """Cancel or complete a booking.
    ---
    tags:
      - Bookings
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            status:
              type: string
              enum: [cancelled, completed]
            cancellation_reason:
              type: string
    """
    data = _json_body()
    if data.get("status") == "cancelled":
        return _cancel_booking(booking_id, data.get("cancellation_reason"))
    booking = bookings.update_booking(booking_id, g.user, data)
    return jsonify({"booking": booking.to_dict()}), 200


@bp.delete("/bookings/<int:booking_id>")
@login_required
def cancel_booking(booking_id: int) -> tuple[dict[str, object], int]:
    return _cancel_booking(booking_id, _json_body().get("cancellation_reason"))


def _cancel_booking(booking_id: int, reason: str | None) -> tuple[dict[str, object], int]:
    booking, cancelled = bookings.cancel_booking(booking_id, g.user, reason)
    if not cancelled:
        return jsonify({"message": "Booking is awaiting payment", "booking": booking.to_dict()}), 200
    return jsonify({"message": "Booking cancelled", "booking": booking.to_dict()}), 200


@bp.post("/payments")
@login_required
def start_payment() -> tuple[dict[str, object], int]:
    """Open a card payment for an order or booking still in checkout.
    ---
    tags:
      - Payments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [target_type, target_id]
          properties:
            target_type:
              type: string
              enum: [order, booking]
            target_id:
              type: integer
    responses:
      201:
        description: Payment created; returns the client secret
      400:
        description: Target already paid or not awaiting payment
      500:
        description: Payment gateway error
    """
    data = _json_body()
    try:
        target_id = int(data.get("target_id"))
    except (TypeError, ValueError) as exc:
        raise BadRequestError("target_id must be an integer", error="invalid_payload") from exc
    _, payment = payments.start_payment(g.user, data.get("target_type"), target_id)
    return jsonify({"payment": payment.to_dict(), **_payment_payload(payment)}), 201


@bp.get("/payments")
@login_required
def list_payments() -> tuple[dict[str, object], int]:
    page, limit = parse_page_args(request.args)
    result = payments.list_payments(
        g.user,
        status=request.args.get("status"),
        target_type=request.args.get("targetType"),
        page=page,
        limit=limit,
    )
    return jsonify(result), 200


@bp.get("/payments/<int:payment_id>")
@login_required
def get_payment(payment_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"payment": payments.get_payment(payment_id, g.user).to_dict()}), 200


@bp.post("/payments/confirm")
@login_required
def confirm_payment() -> tuple[dict[str, object], int]:
    """Confirm a payment once the gateway reports success.
    ---
    tags:
      - Payments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [client_secret]
          properties:
            client_secret:
              type: string
    """
    payment = payments.confirm_payment(_json_body().get("client_secret"), g.user)
    return jsonify({"message": "Payment confirmed", "payment": payment.to_dict()}), 200


@bp.post("/payments/cancel")
@login_required
def cancel_payment() -> tuple[dict[str, object], int]:
    payment = payments.cancel_payment(_json_body().get("client_secret"), g.user)
    return jsonify({"message": "Payment cancelled", "payment": payment.to_dict()}), 200


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)
