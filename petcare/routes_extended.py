"""Extended routes for orders and reviews."""
from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from . import orders, reviews
from .auth import login_required
from .errors import BadRequestError
from .pagination import parse_page_args
from .routes import _json_body, _list_args, _payment_payload

bp_ext = Blueprint("api_ext", __name__)


# ORDERS
@bp_ext.post("/orders")
@login_required
def create_order() -> tuple[dict[str, object], int]:
    """Place an order for products in the cart.
    ---
    tags:
      - Orders
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [items, shipping_address]
          properties:
            items:
              type: array
              items:
                type: object
                properties:
                  product_id:
                    type: integer
                  quantity:
                    type: integer
            shipping_address:
              type: object
            payment_method:
              type: string
              enum: [credit_card, cash]
            notes:
              type: string
    responses:
      201:
        description: Order created
      400:
        description: Invalid payload or insufficient stock
      404:
        description: Product not found
    """
    order, payment = orders.create_order(g.user, _json_body())
    return jsonify({"order": order.to_dict(), "payment": _payment_payload(payment)}), 201


@bp_ext.get("/orders")
@login_required
def list_orders() -> tuple[dict[str, object], int]:
    """List all orders past checkout (staff and admin only).
    ---
    tags:
      - Orders
    parameters:
      - name: status
        in: query
        type: string
      - name: search
        in: query
        type: string
      - name: customer
        in: query
        type: integer
      - name: paymentMethod
        in: query
        type: string
      - name: startDate
        in: query
        type: string
      - name: endDate
        in: query
        type: string
      - name: page
        in: query
        type: integer
      - name: limit
        in: query
        type: integer
    """
    return jsonify(orders.list_orders(g.user, _list_args())), 200


@bp_ext.get("/orders/my-orders")
@login_required
def list_my_orders() -> tuple[dict[str, object], int]:
    return jsonify(orders.list_my_orders(g.user, _list_args())), 200


@bp_ext.get("/orders/<int:order_id>")
@login_required
def get_order(order_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"order": orders.get_order(order_id, g.user).to_dict()}), 200


@bp_ext.patch("/orders/<int:order_id>")
@login_required
def update_order_status(order_id: int) -> tuple[dict[str, object], int]:
    """Move an order along its lifecycle (staff and admin only).
    ---
    tags:
      - Orders
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [status]
          properties:
            status:
              type: string
              enum: [pending, shipping, delivered, cancelled]
            cancel_reason:
              type: string
    """
    data = _json_body()
    if not data.get("status"):
        raise BadRequestError("status is required", error="invalid_payload")
    order = orders.update_status(order_id, g.user, data["status"], data.get("cancel_reason"))
    return jsonify({"order": order.to_dict()}), 200


@bp_ext.post("/orders/<int:order_id>/cancel")
@login_required
def cancel_order(order_id: int) -> tuple[dict[str, object], int]:
    order, cancelled = orders.cancel_order(order_id, g.user, _json_body().get("cancel_reason"))
    if not cancelled:
        return jsonify({"message": "Order is awaiting payment", "order": order.to_dict()}), 200
    return jsonify({"message": "Order cancelled", "order": order.to_dict()}), 200


@bp_ext.post("/orders/<int:order_id>/confirm-delivery")
@login_required
def confirm_delivery(order_id: int) -> tuple[dict[str, object], int]:
    order = orders.confirm_delivery(order_id, g.user)
    return jsonify({"message": "Delivery confirmed", "order": order.to_dict()}), 200


# REVIEWS
@bp_ext.post("/reviews")
@login_required
def create_review() -> tuple[dict[str, object], int]:
    """Review a delivered product or a completed service booking.
    ---
    tags:
      - Reviews
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [target_type, target_id, source_type, source_id, rating, content]
          properties:
            target_type:
              type: string
              enum: [product, service]
            target_id:
              type: integer
            source_type:
              type: string
              enum: [order, booking]
            source_id:
              type: integer
            rating:
              type: integer
              minimum: 1
              maximum: 5
            content:
              type: string
    responses:
      201:
        description: Review created
      400:
        description: Source not completed, unrelated or already reviewed
      403:
        description: Source belongs to another customer
    """
    review = reviews.create_review(g.user, _json_body())
    return jsonify({"review": review.to_dict()}), 201


@bp_ext.get("/reviews")
def list_reviews() -> tuple[dict[str, object], int]:
    """List visible reviews of one product or service."""
    try:
        target_id = int(request.args.get("targetId", ""))
    except ValueError as exc:
        raise BadRequestError("targetId must be an integer", error="invalid_query") from exc
    page, limit = parse_page_args(request.args)
    return jsonify(reviews.list_reviews(request.args.get("targetType"), target_id, page, limit)), 200


@bp_ext.delete("/reviews/<int:review_id>")
@login_required
def delete_review(review_id: int) -> tuple[dict[str, object], int]:
    reviews.delete_review(review_id, g.user)
    return jsonify({"message": "Review deleted"}), 200


@bp_ext.patch("/reviews/<int:review_id>/visibility")
@login_required
def set_review_visibility(review_id: int) -> tuple[dict[str, object], int]:
    data = _json_body()
    if not isinstance(data.get("is_visible"), bool):
        raise BadRequestError("is_visible must be a boolean", error="invalid_payload")
    review = reviews.set_visibility(review_id, g.user, data["is_visible"])
    return jsonify({"review": review.to_dict()}), 200
