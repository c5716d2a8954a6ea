"""Product stock bookkeeping for order lines.

All functions work inside the caller's transaction and never commit. A
failed reservation leaves earlier lines applied; the caller rolls the whole
transaction back.
"""
from __future__ import annotations

from typing import Iterable

from flask import current_app
from sqlalchemy import update

from .errors import BadRequestError
from .extensions import db
from .models import Product

Line = tuple[int, int]  # (product_id, quantity)


def reserve(lines: Iterable[Line]) -> None:
    """Take stock for each line with a conditional decrement.

    The UPDATE only matches while ``stock >= quantity``, so two requests
    racing for the last unit cannot both succeed.
    """
    for product_id, quantity in lines:
        result = db.session.execute(
            update(Product)
            .where(Product.product_id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current_app.logger.info("Stock reservation failed for product %s (qty %s)", product_id, quantity)
            raise BadRequestError(f"Not enough stock for product {product_id}", error="insufficient_stock")


def release(lines: Iterable[Line]) -> None:
    """Return stock for each line. Products that no longer exist are skipped."""
    for product_id, quantity in lines:
        db.session.execute(
            update(Product)
            .where(Product.product_id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )


def record_sale(lines: Iterable[Line]) -> None:
    for product_id, quantity in lines:
        db.session.execute(
            update(Product)
            .where(Product.product_id == product_id)
            .values(sold_count=Product.sold_count + quantity)
            .execution_options(synchronize_session=False)
        )


def order_lines(order) -> list[Line]:
    return [(item.product_id, item.quantity) for item in order.items]
