import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship

from rental_library.core.database import Base, utcnow


class RentalStatus(str, enum.Enum):
    ACTIVE = "active"
    RETURNED = "returned"


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    genre = Column(String, nullable=False, index=True)
    pages = Column(Integer, nullable=False)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    is_featured = Column(Boolean, nullable=False, default=False)
    color = Column(String, nullable=True)
    cover_url = Column(String, nullable=True)
    synopsis = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    rentals = relationship("Rental", back_populates="book")

Index('ix_books_genre_title', Book.genre, Book.title)
# at most one row may carry the featured flag
Index(
    'uq_books_single_featured', Book.is_featured, unique=True,
    sqlite_where=Book.is_featured == True,  # noqa: E712
    postgresql_where=Book.is_featured == True,  # noqa: E712
)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    phone = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    rentals = relationship("Rental", back_populates="user")


class Rental(Base):
    __tablename__ = "rentals"
    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    rental_date = Column(DateTime, nullable=False, default=utcnow)
    due_date = Column(DateTime, nullable=False, index=True)
    returned = Column(Boolean, nullable=False, default=False, index=True)
    returned_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    book = relationship("Book", back_populates="rentals")
    user = relationship("User", back_populates="rentals")

    @property
    def status(self) -> RentalStatus:
        return RentalStatus.RETURNED if self.returned else RentalStatus.ACTIVE
