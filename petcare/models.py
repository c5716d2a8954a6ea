"""Database models for the PetCare backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SLOT_DURATIONS = (10, 15, 20, 30, 45, 60, 90, 120)

BOOKING_STATUSES = ("checkout", "booked", "completed", "cancelled")
ORDER_STATUSES = ("checkout", "pending", "shipping", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed")
TARGET_PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_METHODS = ("credit_card", "cash")


# Pets attached to a booking
booking_pets = db.Table(
    "booking_pets",
    db.Column("booking_id", db.Integer, db.ForeignKey("bookings.booking_id"), primary_key=True),
    db.Column("pet_id", db.Integer, db.ForeignKey("pets.pet_id"), primary_key=True),
)


class StatusHistoryMixin:
    """Append-only status log stored as a JSON list on the owning record.

    Every append builds a new list, so a previously read history value is
    never mutated in place.
    """

    def append_status(self, status: str, note: str | None = None) -> None:
        entry = {"status": status, "timestamp": utc_now().isoformat(), "note": note}
        self.status_history = [*(self.status_history or []), entry]


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "user",
            "staff",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="user",
    )
    phone = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    pets = db.relationship("Pet", back_populates="owner", lazy="dynamic")

    @property
    def is_staff(self) -> bool:
        return self.role in ("staff", "admin")

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
        }


class Pet(db.Model):
    __tablename__ = "pets"

    pet_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    species = db.Column(db.String(50))
    breed = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    owner = db.relationship("User", back_populates="pets")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.pet_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "species": self.species,
            "breed": self.breed,
        }


class Service(db.Model):
    """Bookable pet-care service with a weekly availability template."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Integer, nullable=False)
    sale_price = db.Column(db.Integer)
    on_sale = db.Column(db.Boolean, nullable=False, default=False)
    # Length of one booking; may exceed the slot step.
    duration_minutes = db.Column(db.Integer)
    capacity = db.Column(db.Integer, nullable=False, default=1)
    # {"monday": {"isOpen": true, "openTime": "09:00", "closeTime": "17:00", "slotDuration": 30}, ...}
    availability = db.Column(db.JSON, nullable=False, default=dict)
    # ISO dates ("2026-01-01")
    excluded_holidays = db.Column(db.JSON, nullable=False, default=list)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    rating_average = db.Column(db.Float, nullable=False, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    rating_total_stars = db.Column(db.Integer, nullable=False, default=0)
    recent_review_ids = db.Column(db.JSON, nullable=False, default=list)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def unit_price(self) -> int:
        if self.on_sale and self.sale_price is not None:
            return self.sale_price
        return self.price

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "sale_price": self.sale_price,
            "on_sale": self.on_sale,
            "duration_minutes": self.duration_minutes,
            "capacity": self.capacity,
            "availability": self.availability,
            "excluded_holidays": self.excluded_holidays,
            "usage_count": self.usage_count,
            "ratings": {
                "average": self.rating_average,
                "count": self.rating_count,
                "total_stars": self.rating_total_stars,
            },
            "recent_review_ids": self.recent_review_ids,
        }


class Product(db.Model):
    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Integer, nullable=False)
    sale_price = db.Column(db.Integer)
    on_sale = db.Column(db.Boolean, nullable=False, default=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    sold_count = db.Column(db.Integer, nullable=False, default=0)
    images = db.Column(db.JSON, nullable=False, default=list)
    rating_average = db.Column(db.Float, nullable=False, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    rating_total_stars = db.Column(db.Integer, nullable=False, default=0)
    recent_review_ids = db.Column(db.JSON, nullable=False, default=list)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    @property
    def unit_price(self) -> int:
        if self.on_sale and self.sale_price is not None:
            return self.sale_price
        return self.price

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "sale_price": self.sale_price,
            "on_sale": self.on_sale,
            "stock": self.stock,
            "sold_count": self.sold_count,
            "images": self.images,
            "ratings": {
                "average": self.rating_average,
                "count": self.rating_count,
                "total_stars": self.rating_total_stars,
            },
            "recent_review_ids": self.recent_review_ids,
        }


class Booking(StatusHistoryMixin, db.Model):
    """Reservation of a service time slot for one or more pets."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    booking_number = db.Column(db.String(40), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False, index=True)
    booking_date = db.Column(db.Date, nullable=False, index=True)
    time_slot = db.Column(db.String(11), nullable=False)  # "HH:MM-HH:MM"
    status = db.Column(
        db.Enum(*BOOKING_STATUSES, name="booking_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="checkout",
        index=True,
    )
    cancelled_by = db.Column(
        db.Enum("customer", "admin", name="booking_cancelled_by", native_enum=False, validate_strings=True),
    )
    cancellation_reason = db.Column(db.String(255))
    total_amount = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.payment_id"), nullable=True)
    payment_method = db.Column(
        db.Enum(*PAYMENT_METHODS, name="booking_payment_method", native_enum=False, validate_strings=True),
        nullable=False,
        default="credit_card",
    )
    payment_status = db.Column(
        db.Enum(*TARGET_PAYMENT_STATUSES, name="booking_payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
    )
    status_history = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("User")
    service = db.relationship("Service")
    pets = db.relationship("Pet", secondary=booking_pets, lazy="selectin")
    payment = db.relationship("Payment", foreign_keys=[payment_id])

    @property
    def owner_id(self) -> int:
        return self.customer_id

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.booking_id,
            "booking_number": self.booking_number,
            "customer_id": self.customer_id,
            "service_id": self.service_id,
            "service": {
                "id": self.service.service_id,
                "name": self.service.name,
                "price": self.service.price,
                "sale_price": self.service.sale_price,
                "on_sale": self.service.on_sale,
            } if self.service else None,
            "pet_ids": [pet.pet_id for pet in self.pets],
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "time_slot": self.time_slot,
            "status": self.status,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "total_amount": self.total_amount,
            "notes": self.notes,
            "payment_id": self.payment_id,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status_history": self.status_history,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Order(StatusHistoryMixin, db.Model):
    __tablename__ = "orders"

    order_id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    subtotal = db.Column(db.Integer, nullable=False)
    shipping_fee = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(
        db.Enum(*ORDER_STATUSES, name="order_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="checkout",
        index=True,
    )
    status_history = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.payment_id"), nullable=True)
    payment_method = db.Column(
        db.Enum(*PAYMENT_METHODS, name="order_payment_method", native_enum=False, validate_strings=True),
        nullable=False,
        default="credit_card",
    )
    payment_status = db.Column(
        db.Enum(*TARGET_PAYMENT_STATUSES, name="order_payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
    )
    cancelled_by = db.Column(
        db.Enum("customer", "admin", name="order_cancelled_by", native_enum=False, validate_strings=True),
    )
    cancel_reason = db.Column(db.String(255))
    checkout_expiration = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("User")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.order_item_id",
        lazy="selectin",
    )
    payment = db.relationship("Payment", foreign_keys=[payment_id])

    @property
    def owner_id(self) -> int:
        return self.customer_id

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.order_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "shipping_fee": self.shipping_fee,
            "discount": self.discount,
            "total_amount": self.total_amount,
            "shipping_address": self.shipping_address,
            "status": self.status,
            "status_history": self.status_history,
            "notes": self.notes,
            "payment_id": self.payment_id,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "cancelled_by": self.cancelled_by,
            "cancel_reason": self.cancel_reason,
            "checkout_expiration": _iso(self.checkout_expiration),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class OrderItem(db.Model):
    """Order line with the product price snapshotted at creation."""

    __tablename__ = "order_items"

    order_item_id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.order_id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    on_sale = db.Column(db.Boolean, nullable=False, default=False)
    sale_price = db.Column(db.Integer)
    image = db.Column(db.String(500))
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict[str, object]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price,
            "on_sale": self.on_sale,
            "sale_price": self.sale_price,
            "image": self.image,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }


class Payment(db.Model):
    """Payment against exactly one order or booking."""

    __tablename__ = "payments"

    payment_id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(40), unique=True, nullable=False)
    target_type = db.Column(
        db.Enum("order", "booking", name="payment_target_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    target_id = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="vnd")
    method = db.Column(
        db.Enum("credit_card", name="payment_method", native_enum=False, validate_strings=True),
        nullable=False,
        default="credit_card",
    )
    provider = db.Column(db.String(20), nullable=False, default="stripe")
    # Track payment gateway identifier (e.g. Stripe payment intent id)
    gateway_intent_id = db.Column(db.String(255), unique=True)
    client_secret = db.Column(db.String(255), unique=True, index=True)
    status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.Index("ix_payments_target", "target_type", "target_id"),
    )

    def resolve_target(self) -> Order | Booking | None:
        if self.target_type == "order":
            return db.session.get(Order, self.target_id)
        if self.target_type == "booking":
            return db.session.get(Booking, self.target_id)
        raise ValueError(f"unknown payment target type {self.target_type!r}")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.payment_id,
            "payment_number": self.payment_number,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "customer_id": self.customer_id,
            "amount": self.amount,
            "currency": self.currency,
            "method": self.method,
            "provider": self.provider,
            "client_secret": self.client_secret,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


class Review(db.Model):
    """Verified review of a product or service, tied to the order or booking it came from."""

    __tablename__ = "reviews"

    review_id = db.Column(db.Integer, primary_key=True)
    target_type = db.Column(
        db.Enum("product", "service", name="review_target_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    target_id = db.Column(db.Integer, nullable=False)
    source_type = db.Column(
        db.Enum("order", "booking", name="review_source_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    source_id = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)  # 1-5 stars
    content = db.Column(db.Text, nullable=False)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("User")

    __table_args__ = (
        db.Index("ix_reviews_target", "target_type", "target_id"),
        db.UniqueConstraint(
            "customer_id", "source_type", "source_id", "target_type", "target_id",
            name="uq_review_once_per_source_target",
        ),
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.review_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else "Anonymous",
            "rating": self.rating,
            "content": self.content,
            "is_visible": self.is_visible,
            "created_at": _iso(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(255))
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.notification_id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "link": self.link,
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
        }
