import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from rental_library.core.config import MAX_ACTIVE_RENTALS
from rental_library.core.database import get_db, utcnow
from rental_library.models import models
from rental_library.schemas import schemas
from rental_library.services.due_dates import DueStatus, classify_days, days_until_due
from rental_library.services.engine import RentalEngine
from rental_library.services.stores import BookStore, RentalStore, UserStore

logger = logging.getLogger("rentals.api")

router = APIRouter()


def get_engine(db: Session = Depends(get_db)) -> RentalEngine:
    return RentalEngine(db)


# -----------------------------
# Books
# -----------------------------
@router.get("/books/", response_model=List[schemas.BookOut])
def list_books(q: Optional[str] = Query(None, description="search title"),
               genre: Optional[str] = None,
               include_featured: bool = True,
               skip: int = 0, limit: int = 100,
               db: Session = Depends(get_db)):
    return BookStore(db).search(q=q, genre=genre, include_featured=include_featured, skip=skip, limit=limit)


@router.post("/books/", response_model=schemas.BookOut)
def create_book(book_in: schemas.BookCreate, engine: RentalEngine = Depends(get_engine)):
    return engine.add_book(book_in.model_dump())


@router.get("/books/genres", response_model=List[str])
def list_genres(db: Session = Depends(get_db)):
    return BookStore(db).genres()


@router.get("/books/featured", response_model=Optional[schemas.BookOut])
def read_featured(db: Session = Depends(get_db)):
    return BookStore(db).featured()


@router.delete("/books/featured")
def clear_featured(engine: RentalEngine = Depends(get_engine)):
    return {"cleared": engine.clear_featured()}


@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    book = BookStore(db).get(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate, engine: RentalEngine = Depends(get_engine)):
    return engine.edit_book(book_id, book_upd.model_dump(exclude_unset=True))


@router.delete("/books/{book_id}")
def delete_book(book_id: int, engine: RentalEngine = Depends(get_engine)):
    engine.delete_book(book_id)
    return {"ok": True}


@router.put("/books/{book_id}/featured", response_model=schemas.BookOut)
def set_featured(book_id: int, body: schemas.FeaturedIn, engine: RentalEngine = Depends(get_engine)):
    return engine.set_featured(book_id, body.featured)


@router.get("/books/{book_id}/rentals", response_model=List[schemas.RentalOut])
def list_book_rentals(book_id: int, active: Optional[bool] = None, db: Session = Depends(get_db)):
    if not BookStore(db).get(book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    returned = None if active is None else not active
    return RentalStore(db).list(filters={"book_id": book_id, "returned": returned}, order_by=["due_date"])


# -----------------------------
# Users
# -----------------------------
@router.get("/users/", response_model=List[schemas.UserOut])
def list_users(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return UserStore(db).list(order_by=["name"], skip=skip, limit=limit)


@router.post("/users/", response_model=schemas.UserOut)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    users = UserStore(db)
    if users.get_by_email(user_in.email.strip()):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = users.insert({
        "name": user_in.name.strip(),
        "email": user_in.email.strip(),
        "phone": user_in.phone,
    })
    db.commit()
    db.refresh(user)
    logger.info(f"Created user id={user.id} email={user.email}")
    return user


@router.get("/users/rental-counts", response_model=schemas.RentalCounts)
def user_rental_counts(db: Session = Depends(get_db)):
    return {"limit": MAX_ACTIVE_RENTALS, "counts": RentalStore(db).active_counts()}


@router.get("/users/{user_id}", response_model=schemas.UserOut)
def read_user(user_id: int, db: Session = Depends(get_db)):
    user = UserStore(db).get(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/users/{user_id}", response_model=schemas.UserOut)
def update_user(user_id: int, user_upd: schemas.UserUpdate, db: Session = Depends(get_db)):
    users = UserStore(db)
    data = user_upd.model_dump(exclude_unset=True)
    if data.get("email"):
        data["email"] = data["email"].strip()
        existing = users.get_by_email(data["email"])
        if existing and existing.id != user_id:
            raise HTTPException(status_code=400, detail="Email already registered")
    user = users.update(user_id, data)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    db.commit()
    db.refresh(user)
    logger.info(f"Updated user id={user.id}")
    return user


@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db)):
    if not UserStore(db).delete(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    db.commit()
    logger.info(f"Deleted user id={user_id}")
    return {"ok": True}


@router.get("/users/{user_id}/rentals", response_model=List[schemas.RentalOut])
def list_user_rentals(user_id: int, active: Optional[bool] = None, db: Session = Depends(get_db)):
    if not UserStore(db).get(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    returned = None if active is None else not active
    return RentalStore(db).list(filters={"user_id": user_id, "returned": returned}, order_by=["due_date"])


# -----------------------------
# Rentals (rent & return)
# -----------------------------
@router.post("/rentals/", response_model=schemas.RentalOut)
def rent_book(rental_in: schemas.RentalCreate, engine: RentalEngine = Depends(get_engine)):
    return engine.rent_book(rental_in.book_id, rental_in.user_id, rental_in.days)


@router.get("/rentals/", response_model=List[schemas.RentalOut])
def list_rentals(active: Optional[bool] = None,
                 book_id: Optional[int] = None,
                 user_id: Optional[int] = None,
                 skip: int = 0, limit: int = 100,
                 db: Session = Depends(get_db)):
    returned = None if active is None else not active
    filters = {"returned": returned, "book_id": book_id, "user_id": user_id}
    return RentalStore(db).list(filters=filters, order_by=["-rental_date"], skip=skip, limit=limit)


@router.get("/rentals/active", response_model=List[schemas.ActiveRentalOut])
def active_rentals(db: Session = Depends(get_db)):
    now = utcnow()
    rows = (
        db.query(models.Rental, models.Book)
        .join(models.Book, models.Rental.book_id == models.Book.id)
        .filter(models.Rental.returned == False)  # noqa: E712
        .order_by(models.Rental.due_date)
        .all()
    )
    result = []
    for rental, book in rows:
        days = days_until_due(rental.due_date, now)
        item = schemas.RentalOut.model_validate(rental).model_dump()
        item.update(book_title=book.title, book_author=book.author,
                    days_until_due=days, due_status=classify_days(days))
        result.append(item)
    return result


@router.get("/rentals/{rental_id}", response_model=schemas.RentalOut)
def read_rental(rental_id: int, db: Session = Depends(get_db)):
    rental = RentalStore(db).get(rental_id)
    if not rental:
        raise HTTPException(status_code=404, detail="Rental not found")
    return rental


@router.post("/rentals/{rental_id}/return", response_model=schemas.RentalOut)
def return_book(rental_id: int, engine: RentalEngine = Depends(get_engine)):
    return engine.return_book(rental_id)


# -----------------------------
# Metrics
# -----------------------------
@router.get("/metrics", response_model=schemas.MetricsOut)
def metrics(db: Session = Depends(get_db)):
    books = BookStore(db)
    total_books, total_copies, available_copies = db.query(
        func.count(models.Book.id),
        func.coalesce(func.sum(models.Book.total_copies), 0),
        func.coalesce(func.sum(models.Book.available_copies), 0),
    ).one()
    total_users = db.query(func.count(models.User.id)).scalar()
    now = utcnow()
    due_dates = db.query(models.Rental.due_date).filter(models.Rental.returned == False).all()  # noqa: E712
    statuses = [classify_days(days_until_due(row[0], now)) for row in due_dates]
    featured = books.featured()
    return {
        "total_books": total_books,
        "total_copies": total_copies,
        "available_copies": available_copies,
        "total_users": total_users,
        "active_rentals": len(statuses),
        "overdue_rentals": statuses.count(DueStatus.OVERDUE),
        "due_soon_rentals": statuses.count(DueStatus.DUE_SOON),
        "featured_book_id": featured.id if featured else None,
        "genres": books.genres(),
    }
