#!/usr/bin/env python3
"""Create the PetCare tables, optionally dropping existing ones first."""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from petcare import create_app
from petcare.extensions import db


def init_database(drop: bool = False):
    app = create_app()
    with app.app_context():
        if drop:
            db.drop_all()
            print("🗑️  Dropped existing tables")
        db.create_all()
        print(f"✅ Database tables initialized at {app.config['SQLALCHEMY_DATABASE_URI']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="drop all tables before creating them")
    init_database(drop=parser.parse_args().drop)
