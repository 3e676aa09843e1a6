"""Table stores for books, users and rentals.

Stores wrap a SQLAlchemy session and only ``flush``; committing is left to
the caller so several store calls can share one transaction.
"""

from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.orm import Session

from rental_library.core.database import Base
from rental_library.models.models import Book, Rental, User
from rental_library.services.errors import AlreadyReturned

ModelT = TypeVar("ModelT", bound=Base)


class BaseStore(Generic[ModelT]):
    model: type
    protected_fields = ("id", "created_at")

    def __init__(self, db: Session):
        self.db = db

    def _ordering(self, order_by: Optional[Iterable[str]]):
        # "title" sorts ascending, "-due_date" descending
        clauses = []
        for name in order_by or ():
            desc = name.startswith("-")
            column = getattr(self.model, name.lstrip("-"), None)
            if column is None:
                raise ValueError(f"Unknown column {name!r} for {self.model.__tablename__}")
            clauses.append(column.desc() if desc else column.asc())
        return clauses

    def get(self, item_id) -> Optional[ModelT]:
        return self.db.query(self.model).filter(self.model.id == item_id).first()

    def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Iterable[str]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        query = self.db.query(self.model)
        for col_name, value in (filters or {}).items():
            if value is not None and hasattr(self.model, col_name):
                query = query.filter(getattr(self.model, col_name) == value)
        query = query.order_by(*self._ordering(order_by)).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def insert(self, record: Dict[str, Any]) -> ModelT:
        item = self.model(**record)
        self.db.add(item)
        self.db.flush()
        return item

    def update(self, item_id, partial: Dict[str, Any]) -> Optional[ModelT]:
        item = self.get(item_id)
        if item is None:
            return None
        for key, value in partial.items():
            if key not in self.protected_fields and hasattr(item, key):
                setattr(item, key, value)
        self.db.flush()
        return item


class BookStore(BaseStore[Book]):
    model = Book

    def search(
        self,
        q: Optional[str] = None,
        genre: Optional[str] = None,
        include_featured: bool = True,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Book]:
        query = self.db.query(Book)
        if not include_featured:
            query = query.filter(Book.is_featured == False)  # noqa: E712
        if q:
            query = query.filter(Book.title.ilike(f"%{q}%"))
        if genre:
            query = query.filter(Book.genre == genre)
        query = query.order_by(Book.genre, Book.title).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def genres(self) -> List[str]:
        rows = (
            self.db.query(Book.genre)
            .filter(Book.is_featured == False)  # noqa: E712
            .distinct()
            .order_by(Book.genre)
            .all()
        )
        return [r[0] for r in rows]

    def featured(self) -> Optional[Book]:
        return self.db.query(Book).filter(Book.is_featured == True).first()  # noqa: E712

    def delete(self, item_id) -> bool:
        book = self.get(item_id)
        if book is None:
            return False
        self.db.delete(book)
        self.db.flush()
        return True


class UserStore(BaseStore[User]):
    model = User

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def delete(self, item_id) -> bool:
        user = self.get(item_id)
        if user is None:
            return False
        # rentals outlive the user; their user_id is nulled by the relationship
        self.db.delete(user)
        self.db.flush()
        return True


class RentalStore(BaseStore[Rental]):
    """Rentals are never deleted; ``returned`` is their only lifecycle flag."""

    model = Rental
    # the lifecycle flag only moves through RentalEngine.return_book
    protected_fields = ("id", "created_at", "book_id", "rental_date", "returned", "returned_date")

    def update(self, item_id, partial: Dict[str, Any]) -> Optional[Rental]:
        rental = self.get(item_id)
        if rental is not None and rental.returned:
            raise AlreadyReturned(rental.id)
        return super().update(item_id, partial)

    def count(self, book_id=None, user_id=None) -> int:
        query = self.db.query(func.count(Rental.id))
        if book_id is not None:
            query = query.filter(Rental.book_id == book_id)
        if user_id is not None:
            query = query.filter(Rental.user_id == user_id)
        return query.scalar() or 0

    def count_active(self, user_id=None, book_id=None) -> int:
        query = self.db.query(func.count(Rental.id)).filter(Rental.returned == False)  # noqa: E712
        if user_id is not None:
            query = query.filter(Rental.user_id == user_id)
        if book_id is not None:
            query = query.filter(Rental.book_id == book_id)
        return query.scalar() or 0

    def active_counts(self) -> Dict[int, int]:
        rows = (
            self.db.query(Rental.user_id, func.count(Rental.id))
            .filter(Rental.returned == False, Rental.user_id.isnot(None))  # noqa: E712
            .group_by(Rental.user_id)
            .all()
        )
        return {user_id: count for user_id, count in rows}
