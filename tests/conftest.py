import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rental_library.core.database import get_db, init_db
from rental_library.main import app
from rental_library.services.engine import RentalEngine



@pytest.fixture
def db_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def engine(db):
    return RentalEngine(db)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_book(engine):
    counter = {"n": 0}

    def _make(total_copies=1, genre="Fantasy", **extra):
        counter["n"] += 1
        record = {"title": f"Book {counter['n']}", "author": "Author", "genre": genre,
                  "pages": 100, "total_copies": total_copies}
        record.update(extra)
        return engine.add_book(record)
    return _make


@pytest.fixture
def make_user(engine, db):
    counter = {"n": 0}

    def _make(name=None):
        counter["n"] += 1
        user = engine.users.insert({"name": name or f"User {counter['n']}",
                                    "email": f"user{counter['n']}@example.com"})
        db.commit()
        return user
    return _make
