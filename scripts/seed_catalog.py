#!/usr/bin/env python3
"""Seed the database with sample pet-care services and shop products."""
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from petcare import create_app
from petcare.extensions import db
from petcare.models import WEEKDAYS, Product, Service

WEEKDAY_HOURS = {"isOpen": True, "openTime": "08:00", "closeTime": "18:00", "slotDuration": 30}
SUNDAY_CLOSED = {"isOpen": False}


def weekly_availability(**overrides):
    availability = {day: dict(WEEKDAY_HOURS) for day in WEEKDAYS}
    availability["sunday"] = dict(SUNDAY_CLOSED)
    availability.update(overrides)
    return availability


def seed_catalog():
    """Add sample services and products unless the catalog already has them."""
    app = create_app()

    with app.app_context():
        if Service.query.count() or Product.query.count():
            print("⏭️  Catalog already seeded. Skipping...")
            return

        sample_services = [
            {
                "name": "Bath & Brush",
                "description": "Shampoo, blow-dry and full brush-out",
                "price": 150000,
                "duration_minutes": 60,
                "capacity": 2,
            },
            {
                "name": "Full Grooming",
                "description": "Bath, haircut, nail trim and ear cleaning",
                "price": 350000,
                "sale_price": 300000,
                "on_sale": True,
                "duration_minutes": 90,
                "capacity": 1,
            },
            {
                "name": "Nail Trim",
                "description": "Quick nail clipping and filing",
                "price": 50000,
                "duration_minutes": 30,
                "capacity": 3,
            },
        ]
        sample_products = [
            {"name": "Salmon Dry Food 2kg", "price": 250000, "stock": 40},
            {"name": "Chew Toy Bone", "price": 60000, "stock": 100},
            {"name": "Flea & Tick Shampoo", "price": 120000, "sale_price": 99000, "on_sale": True, "stock": 25},
            {"name": "Orthopedic Pet Bed", "price": 650000, "stock": 10},
        ]

        for service_data in sample_services:
            db.session.add(Service(availability=weekly_availability(), **service_data))
            print(f"  ✓ Added service: {service_data['name']}")

        for product_data in sample_products:
            db.session.add(Product(**product_data))
            print(f"  ✓ Added product: {product_data['name']} ({product_data['price']:,} VND)")

        db.session.commit()
        print("\n✅ Catalog seeded successfully!")
        print(f"📊 Services: {Service.query.count()}, products: {Product.query.count()}")

if __name__ == "__main__":
    seed_catalog()
