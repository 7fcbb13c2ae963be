from app.database import Base
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    CheckConstraint,
    Index,
    text,
)


class Book(Base):
    """
    Book model representing a title in the shared catalog.

    Copy accounting:
    - total_copies is the number of physical copies the library owns
    - available_copies is the number of those copies not currently on loan
    - Both ranges are declared as CHECK constraints so that no write path,
      including a lost race, can leave the row outside 0 <= available <= total
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    isbn = Column(String, unique=True, nullable=False, index=True)
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_copies_positive"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies_range",
        ),
    )

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0


class Loan(Base):
    """
    Loan model representing one borrower holding one copy of a book.

    Relationships:
    - book_id references a book by id only; there is no relationship()
      and no lazy loading. The lending engine resolves titles explicitly.
    - The book may be deleted after the loan is returned, so there is no
      foreign key constraint on book_id.

    Business Logic:
    - return_date is NULL while the loan is active and set exactly once
    - The partial unique index allows at most one active loan per user
    """

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    borrow_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    return_date = Column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_loans_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("return_date IS NULL"),
            postgresql_where=text("return_date IS NULL"),
        ),
    )

    @property
    def is_returned(self) -> bool:
        return self.return_date is not None

    def is_overdue(self, now) -> bool:
        """Return True if the loan is still out and its due date has passed."""
        return not self.is_returned and now > self.due_date
