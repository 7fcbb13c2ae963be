import logging
from typing import List, Optional

from app import models
from app.errors import (
    BookHasActiveLoansError,
    BookNotFoundError,
    CopyCountError,
    DuplicateIsbnError,
)
from app.repository import BookRepository, LoanRepository

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


class CatalogService:
    """
    Catalog maintenance: create, read, update and delete books.

    Copy counts are only touched here through create (all copies available)
    and the differential total-copies edit in update_book.
    """

    def __init__(self, db: Session):
        self.db = db
        self.books = BookRepository(db)
        self.loans = LoanRepository(db)

    def create_book(
        self, title: str, author: str, isbn: str, total_copies: int
    ) -> models.Book:
        """
        Add a book with every copy available.

        Business Logic:
        - ISBN must be unique across all books. The check runs first for a
          clear error; the unique constraint catches a concurrent insert.

        Raises:
            DuplicateIsbnError: another book already has this ISBN
        """
        if self.books.isbn_taken(isbn):
            raise DuplicateIsbnError(isbn)

        book = models.Book(
            title=title,
            author=author,
            isbn=isbn,
            total_copies=total_copies,
            available_copies=total_copies,
        )
        try:
            self.books.insert(book)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateIsbnError(isbn)
        self.db.refresh(book)
        logger.info("Book %s added: %r (%d copies)", book.id, title, total_copies)
        return book

    def get_book(self, book_id: int) -> models.Book:
        book = self.books.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    def list_books(self) -> List[models.Book]:
        return self.books.all()

    def update_book(
        self,
        book_id: int,
        title: Optional[str] = None,
        author: Optional[str] = None,
        isbn: Optional[str] = None,
        total_copies: Optional[int] = None,
    ) -> models.Book:
        """
        Update a book's fields; omitted (None) fields keep their value.

        Internal Working:
        1. Fetches the book (404 if missing)
        2. Validates ISBN uniqueness if ISBN is being changed
        3. Without a total_copies change, the row is replaced as a whole
        4. With one, BookRepository.resize writes every field and moves
           available_copies by the same delta in a single statement

        Raises:
            BookNotFoundError: no book with this id
            DuplicateIsbnError: the new ISBN belongs to another book
            CopyCountError: more copies are on loan than the new total
        """
        book = self.get_book(book_id)

        if isbn is not None and isbn != book.isbn and self.books.isbn_taken(isbn, book_id):
            raise DuplicateIsbnError(isbn)

        fields = {
            key: value
            for key, value in (("title", title), ("author", author), ("isbn", isbn))
            if value is not None
        }

        try:
            if total_copies is None or total_copies == book.total_copies:
                for key, value in fields.items():
                    setattr(book, key, value)
                self.books.update(book)
            elif not self.books.resize(book_id, total_copies, **fields):
                raise CopyCountError(book_id, total_copies)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateIsbnError(isbn)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(book)
        return book

    def delete_book(self, book_id: int) -> None:
        """
        Remove a book from the catalog.

        Raises:
            BookNotFoundError: no book with this id
            BookHasActiveLoansError: a copy is still on loan
        """
        book = self.get_book(book_id)
        if self.loans.has_active_for_book(book_id):
            raise BookHasActiveLoansError(book_id)
        try:
            self.books.delete(book)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Book %s deleted", book_id)
