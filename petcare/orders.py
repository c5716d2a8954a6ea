"""Order lifecycle.

    checkout --> pending --> shipping --> delivered
        |           |           |
        +-----------+-----------+--> cancelled

Stock is taken when the order is created and given back whenever an order
leaves the system without being delivered (cancellation here, abandoned
checkouts in the sweeper).
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import exists

from . import identifiers, inventory, payments
from .errors import BadRequestError, NotFoundError
from .extensions import db
from .models import ORDER_STATUSES, PAYMENT_METHODS, Order, OrderItem, Payment, Product, Review, User, utc_now
from .notifications import send_notification
from .pagination import apply_sort, int_arg, paginate
from .policy import authorize

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "checkout": frozenset({"pending", "cancelled"}),
    "pending": frozenset({"shipping", "cancelled"}),
    "shipping": frozenset({"delivered", "cancelled"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}

STATUS_NOTES = {
    "pending": "Order placed",
    "shipping": "Order handed to carrier",
    "delivered": "Order delivered",
    "cancelled": "Order cancelled",
}

SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "totalAmount": "total_amount",
    "total_amount": "total_amount",
    "status": "status",
}


def shipping_fee_for(subtotal: int) -> int:
    if subtotal >= current_app.config["FREE_SHIPPING_THRESHOLD"]:
        return 0
    return current_app.config["SHIPPING_FEE"]


def _get_or_404(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _transition(order: Order, new_status: str, note: str | None = None) -> None:
    if new_status not in ORDER_TRANSITIONS.get(order.status, frozenset()):
        raise BadRequestError(
            f"Order cannot move from {order.status} to {new_status}", error="invalid_transition"
        )
    order.status = new_status
    order.append_status(new_status, note or STATUS_NOTES.get(new_status))


def _parse_items(raw_items) -> list[tuple[int, int]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise BadRequestError("items must be a non-empty list", error="invalid_payload")

    quantities: dict[int, int] = {}
    for entry in raw_items:
        try:
            product_id = int(entry["product_id"])
            quantity = int(entry["quantity"])
        except (KeyError, TypeError, ValueError) as exc:
            raise BadRequestError("each item needs product_id and quantity", error="invalid_payload") from exc
        if quantity < 1:
            raise BadRequestError("quantity must be at least 1", error="invalid_payload")
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return list(quantities.items())


def create_order(customer: User, payload: dict, now: datetime | None = None) -> tuple[Order, Payment | None]:
    """Snapshot the cart into an order and take stock for it.

    Everything happens in one transaction: if any line is short of stock, or
    the payment handshake fails, no stock is taken and no order remains.
    """
    lines = _parse_items(payload.get("items"))
    payment_method = payload.get("payment_method") or "credit_card"
    if payment_method not in PAYMENT_METHODS:
        raise BadRequestError("payment_method must be 'credit_card' or 'cash'", error="invalid_payload")
    shipping_address = payload.get("shipping_address")
    if not isinstance(shipping_address, dict) or not shipping_address:
        raise BadRequestError("shipping_address is required", error="invalid_payload")

    products = {
        p.product_id: p
        for p in Product.query.filter(Product.product_id.in_([pid for pid, _ in lines])).all()
    }

    order_items = []
    for product_id, quantity in lines:
        product = products.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if quantity > product.stock:
            raise BadRequestError(
                f"Not enough stock for {product.name}. Available: {product.stock}",
                error="insufficient_stock",
            )
        unit_price = product.unit_price
        order_items.append(
            OrderItem(
                product_id=product.product_id,
                name=product.name,
                price=product.price,
                on_sale=product.on_sale,
                sale_price=product.sale_price,
                image=(product.images or [None])[0],
                quantity=quantity,
                subtotal=unit_price * quantity,
            )
        )

    subtotal = sum(item.subtotal for item in order_items)
    shipping_fee = shipping_fee_for(subtotal)
    discount = 0
    created_at = now or utc_now()
    status = "checkout" if payment_method == "credit_card" else "pending"

    order = Order(
        order_number=identifiers.order_number(created_at),
        customer_id=customer.user_id,
        items=order_items,
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        discount=discount,
        total_amount=subtotal + shipping_fee - discount,
        shipping_address=shipping_address,
        status=status,
        notes=(payload.get("notes") or "").strip() or None,
        payment_method=payment_method,
        payment_status="pending",
        checkout_expiration=created_at + timedelta(minutes=current_app.config["ORDER_CHECKOUT_TTL_MINUTES"]),
        created_at=created_at,
    )
    if status == "pending":
        order.append_status("pending", STATUS_NOTES["pending"])

    payment = None
    try:
        inventory.reserve(lines)
        db.session.add(order)
        db.session.flush()

        if payment_method == "credit_card":
            payment = payments.create_payment("order", order.order_id, customer.user_id, order.total_amount)
            order.payment_id = payment.payment_id

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Order %s created for user %s (total %s, %s)",
        order.order_number, customer.user_id, order.total_amount, status,
    )
    if status == "pending":
        send_notification(
            user_id=customer.user_id,
            title="Order placed",
            body=f"Your order {order.order_number} has been placed.",
            link=f"/orders/{order.order_id}",
        )
    return order, payment


def update_status(order_id: int, user: User, new_status: str, reason: str | None = None) -> Order:
    """Staff-driven status change along the enumerated transitions."""
    order = _get_or_404(order_id)
    authorize("order.update_status", user, order.customer_id, "Only administrators and staff can update orders")

    if new_status not in ORDER_STATUSES:
        raise BadRequestError(f"Unknown order status {new_status!r}", error="invalid_transition")

    if new_status == "cancelled":
        _transition(order, "cancelled", f"Cancelled by staff: {reason}" if reason else None)
        inventory.release(inventory.order_lines(order))
        order.cancelled_by = "admin"
        order.cancel_reason = reason
    elif new_status == "delivered":
        _transition(order, "delivered")
        inventory.record_sale(inventory.order_lines(order))
    else:
        _transition(order, new_status)

    db.session.commit()
    current_app.logger.info("Order %s moved to %s by user %s", order.order_number, new_status, user.user_id)
    send_notification(
        user_id=order.customer_id,
        title="Order updated",
        body=f"Your order {order.order_number} is now {new_status}.",
        link=f"/orders/{order.order_id}",
    )
    return order


def cancel_order(order_id: int, user: User, reason: str | None = None) -> tuple[Order, bool]:
    """Customer-facing cancellation of an order that has not shipped.

    Returns ``(order, cancelled)``; an order still in checkout is left
    unchanged and ``cancelled`` is False.
    """
    order = _get_or_404(order_id)
    authorize("order.cancel", user, order.customer_id)

    if order.status not in ("checkout", "pending"):
        raise BadRequestError(f"Order cannot be cancelled when status is {order.status}")
    if order.status == "checkout":
        return order, False

    by_owner = order.customer_id == user.user_id
    _transition(order, "cancelled", f"Cancelled: {reason}" if reason else None)
    inventory.release(inventory.order_lines(order))
    order.cancelled_by = "customer" if by_owner else "admin"
    order.cancel_reason = reason

    db.session.commit()
    current_app.logger.info("Order %s cancelled by %s", order.order_number, order.cancelled_by)
    send_notification(
        user_id=order.customer_id,
        title="Order cancelled",
        body=f"Your order {order.order_number} has been cancelled.",
        link=f"/orders/{order.order_id}",
    )
    return order, True


def confirm_delivery(order_id: int, user: User) -> Order:
    order = _get_or_404(order_id)
    authorize("order.confirm_delivery", user, order.customer_id)

    if order.status != "shipping":
        raise BadRequestError("Only orders that are shipping can be confirmed as delivered")
    _transition(order, "delivered", "Delivery confirmed by customer")
    inventory.record_sale(inventory.order_lines(order))

    db.session.commit()
    current_app.logger.info("Order %s delivery confirmed", order.order_number)
    return order


def get_order(order_id: int, user: User) -> Order:
    order = _get_or_404(order_id)
    authorize("order.read", user, order.customer_id)
    return order


def _parse_day(value, name: str) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise BadRequestError(f"{name} must be in YYYY-MM-DD format", error="invalid_query") from exc


def list_orders(user: User, args) -> dict[str, object]:
    """Staff view over every order past checkout."""
    authorize("order.list_all", user)
    query = Order.query.filter(Order.status != "checkout")

    if args.get("status"):
        query = query.filter(Order.status == args["status"])
    if args.get("search"):
        query = query.filter(Order.order_number.ilike(f"%{args['search']}%"))
    if args.get("customer"):
        query = query.filter(Order.customer_id == int_arg(args, "customer"))
    if args.get("paymentMethod"):
        query = query.filter(Order.payment_method == args["paymentMethod"])
    if args.get("startDate"):
        start = _parse_day(args["startDate"], "startDate")
        query = query.filter(Order.created_at >= datetime.combine(start, datetime.min.time()))
    if args.get("endDate"):
        end = _parse_day(args["endDate"], "endDate") + timedelta(days=1)
        query = query.filter(Order.created_at < datetime.combine(end, datetime.min.time()))

    query = apply_sort(query, Order, args.get("sortBy"), SORTABLE_FIELDS, "-createdAt")
    return paginate(query, args["page"], args["limit"])


def list_my_orders(user: User, args) -> dict[str, object]:
    """The caller's own orders, each flagged with whether it has been reviewed."""
    query = Order.query.filter(Order.customer_id == user.user_id)
    if args.get("status"):
        query = query.filter(Order.status == args["status"])
    query = apply_sort(query, Order, args.get("sortBy"), SORTABLE_FIELDS, "-createdAt")

    def _serialize(order: Order) -> dict[str, object]:
        data = order.to_dict()
        data["is_rated"] = bool(db.session.query(
            exists().where(
                Review.source_type == "order",
                Review.source_id == order.order_id,
                Review.customer_id == user.user_id,
            )
        ).scalar())
        return data

    return paginate(query, args["page"], args["limit"], serialize=_serialize)
