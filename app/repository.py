from app import models

from datetime import datetime
from typing import Dict, Generic, Iterable, Iterator, List, Optional, Type, TypeVar
from sqlalchemy.orm import Session


ModelT = TypeVar("ModelT")


class Repository(Generic[ModelT]):
    """
    Keyed storage of one model type on top of a SQLAlchemy session.

    Internal Working:
    - Writes are flushed, never committed. The caller owns the unit of
      work and decides when to commit or roll back.
    - find() takes SQLAlchemy filter expressions, e.g.
      ``loans.find(models.Loan.user_id == "alice")``.
    - Results are ordered by primary key so listings are stable.
    """

    model: Type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def get(self, entity_id) -> Optional[ModelT]:
        return self.db.get(self.model, entity_id)

    def all(self) -> List[ModelT]:
        return self.db.query(self.model).order_by(self.model.id).all()

    def find(self, *criteria) -> List[ModelT]:
        return self.db.query(self.model).filter(*criteria).order_by(self.model.id).all()

    def iter_find(self, *criteria, batch_size: int = 100) -> Iterator[ModelT]:
        """Stream matching rows in batches instead of loading them all."""
        query = self.db.query(self.model).filter(*criteria).order_by(self.model.id)
        yield from query.yield_per(batch_size)

    def insert(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        self.db.flush()
        return entity

    def update(self, entity: ModelT) -> ModelT:
        """Replace the stored record with the given one."""
        merged = self.db.merge(entity)
        self.db.flush()
        return merged

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class BookRepository(Repository[models.Book]):
    """
    Catalog store.

    The copy-count mutations are single conditional UPDATE statements.
    Each returns False when its guard did not match, which is how a
    caller learns that it lost a race without reading the row first.
    """

    model = models.Book

    def titles(self, book_ids: Iterable[int]) -> Dict[int, str]:
        """Map each existing id to its title; unknown ids are left out."""
        book_ids = set(book_ids)
        if not book_ids:
            return {}
        rows = (
            self.db.query(models.Book.id, models.Book.title)
            .filter(models.Book.id.in_(book_ids))
            .all()
        )
        return {book_id: title for book_id, title in rows}

    def isbn_taken(self, isbn: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(models.Book.id).filter(models.Book.isbn == isbn)
        if exclude_id is not None:
            query = query.filter(models.Book.id != exclude_id)
        return query.first() is not None

    def take_copy(self, book_id: int) -> bool:
        rows = (
            self.db.query(models.Book)
            .filter(models.Book.id == book_id, models.Book.available_copies > 0)
            .update(
                {models.Book.available_copies: models.Book.available_copies - 1},
                synchronize_session=False,
            )
        )
        return rows == 1

    def put_back_copy(self, book_id: int) -> bool:
        rows = (
            self.db.query(models.Book)
            .filter(
                models.Book.id == book_id,
                models.Book.available_copies < models.Book.total_copies,
            )
            .update(
                {models.Book.available_copies: models.Book.available_copies + 1},
                synchronize_session=False,
            )
        )
        return rows == 1

    def resize(self, book_id: int, total_copies: int, **fields) -> bool:
        """
        Set total_copies and shift available_copies by the same delta.

        Both columns change in one statement, and every right-hand side
        reads the pre-update row, so the invariant is never observable
        as broken. The guard rejects a reduction below the number of
        copies currently on loan.
        """
        delta = total_copies - models.Book.total_copies
        values = {getattr(models.Book, name): value for name, value in fields.items()}
        values[models.Book.total_copies] = total_copies
        values[models.Book.available_copies] = models.Book.available_copies + delta
        rows = (
            self.db.query(models.Book)
            .filter(models.Book.id == book_id, models.Book.available_copies + delta >= 0)
            .update(values, synchronize_session=False)
        )
        return rows == 1


class LoanRepository(Repository[models.Loan]):
    """Loan store."""

    model = models.Loan

    def active_for_user(self, user_id: str) -> List[models.Loan]:
        return self.find(
            models.Loan.user_id == user_id, models.Loan.return_date.is_(None)
        )

    def has_active_for_book(self, book_id: int) -> bool:
        query = self.db.query(models.Loan.id).filter(
            models.Loan.book_id == book_id, models.Loan.return_date.is_(None)
        )
        return query.first() is not None

    def for_user(self, user_id: str) -> List[models.Loan]:
        return self.find(models.Loan.user_id == user_id)

    def iter_overdue(self, now: datetime) -> Iterator[models.Loan]:
        return self.iter_find(
            models.Loan.return_date.is_(None), models.Loan.due_date < now
        )

    def mark_returned(self, loan_id: int, returned_at: datetime) -> bool:
        rows = (
            self.db.query(models.Loan)
            .filter(models.Loan.id == loan_id, models.Loan.return_date.is_(None))
            .update({models.Loan.return_date: returned_at}, synchronize_session=False)
        )
        return rows == 1
