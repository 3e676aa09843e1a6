"""Small maintenance utilities: create tables and seed sample data."""

import argparse
import logging

from rental_library.core.config import configure_logging
from rental_library.core.database import SessionLocal, init_db
from rental_library.models.models import User
from rental_library.services.engine import RentalEngine

logger = logging.getLogger("rentals.cli")

SAMPLE_USERS = [
    {"name": "Alice", "email": "alice@example.com", "phone": "555-0100"},
    {"name": "Bob", "email": "bob@example.com"},
]

SAMPLE_BOOKS = [
    {"title": "Dom Casmurro", "author": "Machado de Assis", "genre": "Romance",
     "pages": 256, "total_copies": 3, "color": "#8b4513"},
    {"title": "The Hobbit", "author": "J. R. R. Tolkien", "genre": "Fantasy",
     "pages": 310, "total_copies": 2, "color": "#2e8b57"},
    {"title": "Dune", "author": "Frank Herbert", "genre": "Science Fiction",
     "pages": 412, "total_copies": 1, "color": "#daa520"},
]


def seed(db) -> None:
    # idempotent: only fills empty tables
    engine = RentalEngine(db)
    if db.query(User).count() == 0:
        for record in SAMPLE_USERS:
            engine.users.insert(record)
        db.commit()
    if not engine.books.list(limit=1):
        for record in SAMPLE_BOOKS:
            engine.add_book(record)
        first = engine.books.list(order_by=["id"], limit=1)[0]
        engine.set_featured(first.id, True)
    logger.info("Seeded sample data")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Rental library utilities")
    parser.add_argument("--initdb", action="store_true", help="Create tables")
    parser.add_argument("--seed", action="store_true", help="Seed sample data")
    args = parser.parse_args(argv)
    configure_logging()
    init_db()
    if args.seed:
        db = SessionLocal()
        try:
            seed(db)
        finally:
            db.close()
    print("Done")


if __name__ == "__main__":
    main()
