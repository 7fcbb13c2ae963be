from app.catalog import CatalogService
from app.clock import FrozenClock
from app.database import Base, make_engine
from app.lending import LendingEngine

import pytest
from datetime import datetime
from sqlalchemy.orm import sessionmaker


T0 = datetime(2024, 3, 1, 10, 0, 0)


@pytest.fixture
def db_engine(tmp_path):
    """
    Engine bound to a fresh SQLite file for each test.

    A file (not :memory:) so that several sessions, including ones on
    other threads, see the same database.
    """
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
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
def clock():
    return FrozenClock(T0)


@pytest.fixture
def lending(db, clock):
    return LendingEngine(db, clock)


@pytest.fixture
def catalog(db):
    return CatalogService(db)


@pytest.fixture
def make_book(catalog):
    """Factory creating books with distinct, valid ISBN-13s."""
    counter = {"n": 0}

    def _make(title="Test Book", total_copies=5, author="Test Author"):
        counter["n"] += 1
        isbn = f"978{counter['n']:010d}"
        return catalog.create_book(title, author, isbn, total_copies)

    return _make
