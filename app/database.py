from app.config import settings

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base


DATABASE_URL = settings.database_url


def make_engine(url: str):
    """
    Create an engine for the given URL.

    SQLite connections are shared across the threadpool that serves
    requests, so same-thread checking is disabled and writers wait on
    the database lock instead of failing immediately.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    Dependency function that provides a database session.

    This generator function:
    1. Creates a new SQLAlchemy session
    2. Yields it to the caller (FastAPI endpoint)
    3. Ensures the session is closed after use (in finally block)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
