from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import datetime
from typing import Dict, List, Optional

from rental_library.core.config import DEFAULT_RENTAL_DAYS, MAX_RENTAL_DAYS, MIN_RENTAL_DAYS
from rental_library.models.models import RentalStatus
from rental_library.services.due_dates import DueStatus


class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    genre: constr(min_length=1)
    pages: int = Field(ge=1)
    total_copies: int = Field(default=1, ge=1)
    color: Optional[str] = None
    cover_url: Optional[str] = None
    synopsis: Optional[str] = None

    @field_validator('title', 'author', 'genre')
    @classmethod
    def ensure_not_blank(cls, v):
        if not v.strip():
            raise ValueError('must not be blank')
        return v


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    pages: Optional[int] = Field(default=None, ge=1)
    total_copies: Optional[int] = Field(default=None, ge=1)
    color: Optional[str] = None
    cover_url: Optional[str] = None
    synopsis: Optional[str] = None


class BookOut(BookBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    available_copies: int
    is_featured: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class FeaturedIn(BaseModel):
    featured: bool


class UserBase(BaseModel):
    name: constr(min_length=1)
    email: constr(min_length=5)
    phone: Optional[str] = None


class UserCreate(UserBase):
    pass


class UserUpdate(BaseModel):
    name: Optional[constr(min_length=1)] = None
    email: Optional[constr(min_length=5)] = None
    phone: Optional[str] = None


class UserOut(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime


class RentalCreate(BaseModel):
    book_id: int
    user_id: int
    days: int = Field(default=DEFAULT_RENTAL_DAYS, ge=MIN_RENTAL_DAYS, le=MAX_RENTAL_DAYS)


class RentalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    user_id: Optional[int] = None
    rental_date: datetime
    due_date: datetime
    returned: bool
    returned_date: Optional[datetime] = None
    status: RentalStatus


class ActiveRentalOut(RentalOut):
    book_title: str
    book_author: str
    days_until_due: int
    due_status: DueStatus


class RentalCounts(BaseModel):
    limit: int
    counts: Dict[int, int]


class MetricsOut(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    total_users: int
    active_rentals: int
    overdue_rentals: int
    due_soon_rentals: int
    featured_book_id: Optional[int] = None
    genres: List[str]
