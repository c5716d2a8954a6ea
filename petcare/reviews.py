"""Verified reviews and the rating summaries kept on products and services."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy import func

from .errors import BadRequestError, ForbiddenError, NotFoundError
from .extensions import db
from .models import Booking, Order, Product, Review, Service, User
from .pagination import paginate
from .policy import authorize

TARGET_MODELS = {"product": Product, "service": Service}


def _load_target(target_type: str, target_id: int) -> Product | Service:
    model = TARGET_MODELS.get(target_type)
    if model is None:
        raise BadRequestError("targetType must be 'product' or 'service'", error="invalid_payload")
    target = db.session.get(model, target_id)
    if target is None:
        raise NotFoundError(f"{target_type.capitalize()} not found")
    return target


def _verify_source(user: User, source_type: str, source_id: int, target_type: str, target_id: int) -> None:
    """Check the reviewer actually received what they are reviewing."""
    if source_type == "booking":
        source = db.session.get(Booking, source_id)
        if source is None:
            raise NotFoundError("Booking not found")
        if source.customer_id != user.user_id:
            raise ForbiddenError("You can only review your own bookings")
        if source.status != "completed":
            raise BadRequestError("Only completed bookings can be reviewed")
        if target_type != "service" or source.service_id != target_id:
            raise BadRequestError("This booking is not for the reviewed service")
    elif source_type == "order":
        source = db.session.get(Order, source_id)
        if source is None:
            raise NotFoundError("Order not found")
        if source.customer_id != user.user_id:
            raise ForbiddenError("You can only review your own orders")
        if source.status != "delivered":
            raise BadRequestError("Only delivered orders can be reviewed")
        if target_type != "product" or target_id not in {item.product_id for item in source.items}:
            raise BadRequestError("This order does not contain the reviewed product")
    else:
        raise BadRequestError("sourceType must be 'order' or 'booking'", error="invalid_payload")


def average_rating(total_stars: int, count: int) -> Decimal:
    """Mean rating to one decimal place, halves rounded up (4.25 -> 4.3)."""
    if not count:
        return Decimal(0)
    return (Decimal(total_stars) / count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def recompute_target_ratings(target_type: str, target_id: int) -> None:
    """Rebuild the rating summary of a product or service from its visible reviews.

    Does not commit.
    """
    target = db.session.get(TARGET_MODELS[target_type], target_id)
    if target is None:
        return

    visible = (Review.target_type == target_type, Review.target_id == target_id, Review.is_visible.is_(True))
    count, total = db.session.query(
        func.count(Review.review_id), func.coalesce(func.sum(Review.rating), 0)
    ).filter(*visible).one()
    recent_ids = [
        review_id
        for (review_id,) in db.session.query(Review.review_id)
        .filter(*visible)
        .order_by(Review.created_at.desc(), Review.review_id.desc())
        .limit(current_app.config["RECENT_REVIEWS_LIMIT"])
    ]

    target.rating_count = count
    target.rating_total_stars = int(total)
    target.rating_average = float(average_rating(int(total), count))
    target.recent_review_ids = recent_ids


def create_review(user: User, payload: dict) -> Review:
    try:
        target_id = int(payload.get("target_id"))
        source_id = int(payload.get("source_id"))
        rating = int(payload.get("rating"))
    except (TypeError, ValueError) as exc:
        raise BadRequestError("target_id, source_id and rating must be integers", error="invalid_payload") from exc

    target_type = payload.get("target_type")
    source_type = payload.get("source_type")
    content = (payload.get("content") or "").strip()

    if not 1 <= rating <= 5:
        raise BadRequestError("Rating must be between 1 and 5", error="invalid_payload")
    if not content:
        raise BadRequestError("content is required", error="invalid_payload")

    _load_target(target_type, target_id)
    _verify_source(user, source_type, source_id, target_type, target_id)

    duplicate = Review.query.filter_by(
        customer_id=user.user_id,
        source_type=source_type,
        source_id=source_id,
        target_type=target_type,
        target_id=target_id,
    ).first()
    if duplicate is not None:
        raise BadRequestError("You have already reviewed this item", error="duplicate_review")

    review = Review(
        target_type=target_type,
        target_id=target_id,
        source_type=source_type,
        source_id=source_id,
        customer_id=user.user_id,
        rating=rating,
        content=content,
    )
    try:
        db.session.add(review)
        db.session.flush()
        recompute_target_ratings(target_type, target_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Review %s created for %s %s", review.review_id, target_type, target_id)
    return review


def delete_review(review_id: int, user: User) -> None:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    authorize("review.delete", user, review.customer_id, "You can only delete your own reviews")

    target_type, target_id = review.target_type, review.target_id
    db.session.delete(review)
    db.session.flush()
    recompute_target_ratings(target_type, target_id)
    db.session.commit()


def set_visibility(review_id: int, user: User, is_visible: bool) -> Review:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    authorize("review.moderate", user, review.customer_id, "Only administrators and staff can moderate reviews")

    review.is_visible = bool(is_visible)
    db.session.flush()
    recompute_target_ratings(review.target_type, review.target_id)
    db.session.commit()
    return review


def list_reviews(target_type: str, target_id: int, page: int = 1, limit: int | None = None) -> dict[str, object]:
    _load_target(target_type, target_id)
    query = Review.query.filter(
        Review.target_type == target_type,
        Review.target_id == target_id,
        Review.is_visible.is_(True),
    ).order_by(Review.created_at.desc(), Review.review_id.desc())
    return paginate(query, page, limit)
