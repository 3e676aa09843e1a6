"""Rental & inventory engine.

Owns every mutation that touches copy counts, the featured flag or the
rental lifecycle. Each public operation runs in one transaction on the
session it was given: commit on success, rollback on any error. Stock and
return bookkeeping use conditional UPDATEs, so a count read earlier in the
session is never trusted when deciding whether a write may happen.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from rental_library.core.config import MAX_ACTIVE_RENTALS, MAX_RENTAL_DAYS, MIN_RENTAL_DAYS
from rental_library.core.database import utcnow
from rental_library.models.models import Book, Rental, User
from rental_library.services.errors import (
    AlreadyReturned,
    InvalidInput,
    LibraryError,
    NotFound,
    OutOfStock,
    RentalLimitExceeded,
)
from rental_library.services.stores import BookStore, RentalStore, UserStore

logger = logging.getLogger("rentals.engine")

# fields the catalog editor may change directly; copy counts and the
# featured flag have their own operations
EDITABLE_BOOK_FIELDS = (
    "title", "author", "genre", "pages", "total_copies", "color", "cover_url", "synopsis",
)


def available_after_resize(new_total_copies: int):
    """SQL expression for ``max(0, available + (new_total - total))``.

    Keeps the number of copies on loan while the owned pool changes size.
    Evaluated against the row being updated; shrinking below the number on
    loan floors at zero rather than failing.
    """
    resized = Book.available_copies + (new_total_copies - Book.total_copies)
    return case((resized < 0, 0), else_=resized)


def _require_int(name: str, value, minimum: int, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f">= {minimum}"
        raise InvalidInput(f"{name} must be {bounds}, got {value}")
    return value


class RentalEngine:
    def __init__(self, db: Session):
        self.db = db
        self.books = BookStore(db)
        self.users = UserStore(db)
        self.rentals = RentalStore(db)

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield
            self.db.commit()
        except LibraryError as exc:
            self.db.rollback()
            logger.warning(f"{operation} rejected: {exc}")
            raise
        except Exception:
            self.db.rollback()
            raise

    def _require_book(self, book_id) -> Book:
        book = self.db.query(Book).filter(Book.id == book_id).populate_existing().first()
        if book is None:
            raise NotFound("Book", book_id)
        return book

    # -----------------------------
    # Rentals
    # -----------------------------
    def rent_book(self, book_id, user_id, period_days: int, now: Optional[datetime] = None) -> Rental:
        _require_int("period_days", period_days, MIN_RENTAL_DAYS, MAX_RENTAL_DAYS)
        now = now or utcnow()
        with self._transaction("rent_book"):
            book = self._require_book(book_id)
            # serialises rentals per user on backends with row locks
            user = (
                self.db.query(User).filter(User.id == user_id)
                .with_for_update().populate_existing().first()
            )
            if user is None:
                raise NotFound("User", user_id)
            if book.available_copies <= 0:
                raise OutOfStock(book.id)

            claimed = (
                self.db.query(Book)
                .filter(Book.id == book.id, Book.available_copies > 0)
                .update({Book.available_copies: Book.available_copies - 1}, synchronize_session=False)
            )
            if not claimed:
                raise OutOfStock(book.id)
            # counted only after the claim above holds the write lock, so a
            # rental committed meanwhile by another session is included
            if self.rentals.count_active(user_id=user.id) >= MAX_ACTIVE_RENTALS:
                raise RentalLimitExceeded(user.id, MAX_ACTIVE_RENTALS)

            rental = self.rentals.insert({
                "book_id": book.id,
                "user_id": user.id,
                "rental_date": now,
                "due_date": now + timedelta(days=period_days),
                "returned": False,
                "returned_date": None,
            })
        logger.info(f"User {user_id} rented book {book_id} rental {rental.id} for {period_days} days")
        return rental

    def return_book(self, rental_id, now: Optional[datetime] = None) -> Rental:
        now = now or utcnow()
        with self._transaction("return_book"):
            rental = self.db.query(Rental).filter(Rental.id == rental_id).populate_existing().first()
            if rental is None:
                raise NotFound("Rental", rental_id)
            if rental.returned:
                raise AlreadyReturned(rental.id)

            closed = (
                self.db.query(Rental)
                .filter(Rental.id == rental.id, Rental.returned == False)  # noqa: E712
                .update({Rental.returned: True, Rental.returned_date: now}, synchronize_session=False)
            )
            if not closed:
                raise AlreadyReturned(rental.id)

            # capped so a return never pushes availability past the owned pool
            self.db.query(Book).filter(
                Book.id == rental.book_id, Book.available_copies < Book.total_copies
            ).update({Book.available_copies: Book.available_copies + 1}, synchronize_session=False)
        self.db.refresh(rental)
        logger.info(f"Rental {rental_id} returned")
        return rental

    # -----------------------------
    # Catalog
    # -----------------------------
    def add_book(self, record: Dict[str, Any]) -> Book:
        data = {k: v for k, v in record.items() if k in EDITABLE_BOOK_FIELDS}
        for field in ("title", "author", "genre"):
            if not str(data.get(field) or "").strip():
                raise InvalidInput(f"{field} is required")
            data[field] = data[field].strip()
        _require_int("pages", data.get("pages"), 1)
        total = _require_int("total_copies", data.get("total_copies", 1), 1)
        data.update(total_copies=total, available_copies=total, is_featured=False)
        with self._transaction("add_book"):
            book = self.books.insert(data)
        logger.info(f"Created book id={book.id} title={book.title}")
        return book

    def edit_book(self, book_id, changes: Dict[str, Any]) -> Book:
        illegal = set(changes) - set(EDITABLE_BOOK_FIELDS)
        if illegal:
            raise InvalidInput(f"Fields cannot be edited directly: {', '.join(sorted(illegal))}")
        changes = dict(changes)
        new_total = changes.pop("total_copies", None)
        if new_total is not None:
            _require_int("total_copies", new_total, 1)
        if "pages" in changes:
            _require_int("pages", changes["pages"], 1)
        for field in ("title", "author", "genre"):
            if field in changes:
                if not str(changes[field] or "").strip():
                    raise InvalidInput(f"{field} cannot be empty")
                changes[field] = changes[field].strip()
        with self._transaction("edit_book"):
            book = self._require_book(book_id)
            if new_total is not None:
                self._apply_total_copies(book.id, new_total)
            self.books.update(book.id, changes)
        logger.info(f"Updated book id={book_id}")
        return book

    def edit_book_copies(self, book_id, new_total_copies: int) -> Book:
        return self.edit_book(book_id, {"total_copies": new_total_copies})

    def _apply_total_copies(self, book_id, new_total: int) -> None:
        # one UPDATE relative to the stored row: copies rented by another
        # session after this one read the book are still counted as on loan
        self.db.query(Book).filter(Book.id == book_id).update(
            {
                Book.available_copies: available_after_resize(new_total),
                Book.total_copies: new_total,
            },
            synchronize_session=False,
        )
        on_loan = self.rentals.count_active(book_id=book_id)
        if on_loan > new_total:
            logger.warning(f"Book {book_id} shrunk to {new_total} copies with {on_loan} on loan")

    def delete_book(self, book_id) -> None:
        with self._transaction("delete_book"):
            book = self._require_book(book_id)
            # rental history is kept, so any rental on record blocks the delete
            on_record = self.rentals.count(book_id=book.id)
            if on_record:
                raise InvalidInput(f"Cannot delete book {book.id} with {on_record} rentals on record")
            self.books.delete(book.id)
        logger.info(f"Deleted book id={book_id}")

    # -----------------------------
    # Featured book
    # -----------------------------
    def set_featured(self, book_id, featured: bool) -> Book:
        with self._transaction("set_featured"):
            book = self._require_book(book_id)
            if featured:
                self.db.query(Book).filter(
                    Book.id != book.id, Book.is_featured == True  # noqa: E712
                ).update({Book.is_featured: False}, synchronize_session=False)
            self.db.query(Book).filter(Book.id == book.id).update(
                {Book.is_featured: bool(featured)}, synchronize_session=False
            )
        self.db.refresh(book)
        logger.info(f"Book {book_id} featured={bool(featured)}")
        return book

    def clear_featured(self) -> int:
        with self._transaction("clear_featured"):
            cleared = self.db.query(Book).filter(Book.is_featured == True).update(  # noqa: E712
                {Book.is_featured: False}, synchronize_session=False
            )
        logger.info(f"Cleared featured flag on {cleared} book(s)")
        return cleared
