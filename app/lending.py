"""
Lending engine: borrow, return and overdue detection.

Every write path is a short unit of work on one session. Copy counts and
the one-active-loan rule are protected by the store itself (conditional
UPDATEs, CHECK constraints and a partial unique index), so two requests
racing in different processes are serialized by the database rather than
by anything held in this process.
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, Iterator, List

from app import models, schemas
from app.clock import Clock
from app.errors import (
    ActiveLoanConflictError,
    BookNotFoundError,
    BookUnavailableError,
    LoanAlreadyReturnedError,
    LoanNotFoundError,
)
from app.repository import BookRepository, LoanRepository

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

LOAN_PERIOD = timedelta(days=7)

# One retry after losing the active-loan race; the retry re-reads state.
BORROW_ATTEMPTS = 2


class LendingEngine:
    """
    Orchestrates loans against the catalog and loan stores.

    Args:
        db: Session that scopes one caller's unit of work
        clock: Source of "now" for borrow, due and return dates
    """

    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock
        self.books = BookRepository(db)
        self.loans = LoanRepository(db)

    def borrow(self, book_id: int, user_id: str) -> schemas.Loan:
        """
        Lend one copy of a book to a member.

        Business Logic:
        1. The member must not already hold an active loan
        2. The book must exist and have a copy available
        3. A loan is created due LOAN_PERIOD from now, and the book loses
           one available copy

        Internal Working:
        - The decrement is guarded by ``available_copies > 0`` in SQL, so
          a concurrent borrower that took the last copy makes it match no
          row and this call reports the book as unavailable.
        - Inserting the loan trips the partial unique index if another
          request granted this member a loan in the meantime. The attempt
          is rolled back (undoing the decrement) and retried once; the
          retry sees the winner's loan and reports the conflict.

        Raises:
            ActiveLoanConflictError: the member already has an active loan
            BookNotFoundError: no book with this id
            BookUnavailableError: every copy is on loan
        """
        for attempt in range(1, BORROW_ATTEMPTS + 1):
            try:
                return self._try_borrow(book_id, user_id)
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    "Borrow of book %s by %s lost a race (attempt %d)",
                    book_id,
                    user_id,
                    attempt,
                )
            except Exception:
                self.db.rollback()
                raise
        raise ActiveLoanConflictError(user_id)

    def _try_borrow(self, book_id: int, user_id: str) -> schemas.Loan:
        if self.loans.active_for_user(user_id):
            raise ActiveLoanConflictError(user_id)

        book = self.books.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        if not book.is_available:
            raise BookUnavailableError(book_id)
        title = book.title

        now = self.clock.now()
        if not self.books.take_copy(book_id):
            raise BookUnavailableError(book_id)

        loan = self.loans.insert(
            models.Loan(
                book_id=book_id,
                user_id=user_id,
                borrow_date=now,
                due_date=now + LOAN_PERIOD,
                return_date=None,
            )
        )
        self.db.commit()
        logger.info("Loan %s: book %s lent to %s", loan.id, book_id, user_id)
        return self._view(loan, title)

    def return_loan(self, loan_id: int, user_id: str) -> schemas.Loan:
        """
        Return a borrowed copy.

        Business Logic:
        1. The loan must exist and belong to the caller; a loan owned by
           someone else is reported exactly like a missing one
        2. A loan can be returned only once
        3. The loan gets its return date and the book regains one copy.
           If the book has since been deleted the loan is still returned.

        Raises:
            LoanNotFoundError: unknown loan, or not the caller's loan
            LoanAlreadyReturnedError: the loan was already returned
        """
        try:
            loan = self.loans.get(loan_id)
            if loan is None or loan.user_id != user_id:
                raise LoanNotFoundError(loan_id)
            if loan.is_returned:
                raise LoanAlreadyReturnedError(loan_id)

            if not self.loans.mark_returned(loan_id, self.clock.now()):
                # A concurrent return got there first.
                raise LoanAlreadyReturnedError(loan_id)

            if not self.books.put_back_copy(loan.book_id):
                logger.warning(
                    "Loan %s returned but book %s was not restocked "
                    "(deleted or already at full stock)",
                    loan_id,
                    loan.book_id,
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(loan)
        logger.info("Loan %s: book %s returned by %s", loan_id, loan.book_id, user_id)
        book = self.books.get(loan.book_id)
        return self._view(loan, book.title if book is not None else "")

    def list_user_loans(self, user_id: str) -> List[schemas.Loan]:
        """Every loan of one member, active and returned."""
        return self._views(self.loans.for_user(user_id))

    def list_all_loans(self) -> List[schemas.Loan]:
        return self._views(self.loans.all())

    def scan_overdue(self) -> Iterator[schemas.Loan]:
        """
        Lazily yield every active loan whose due date has passed.

        Each call starts from current state; nothing is mutated and no
        position is kept between calls.
        """
        now = self.clock.now()
        titles: Dict[int, str] = {}
        for loan in self.loans.iter_overdue(now):
            if loan.book_id not in titles:
                book = self.books.get(loan.book_id)
                titles[loan.book_id] = book.title if book is not None else ""
            yield self._view(loan, titles[loan.book_id], now)

    def list_overdue_loans(self) -> List[schemas.Loan]:
        return list(self.scan_overdue())

    def _views(self, loans: Iterable[models.Loan]) -> List[schemas.Loan]:
        loans = list(loans)
        titles = self.books.titles({loan.book_id for loan in loans})
        now = self.clock.now()
        return [self._view(loan, titles.get(loan.book_id, ""), now) for loan in loans]

    def _view(self, loan: models.Loan, book_title: str, now=None) -> schemas.Loan:
        if now is None:
            now = self.clock.now()
        return schemas.Loan(
            id=loan.id,
            book_id=loan.book_id,
            book_title=book_title,
            user_id=loan.user_id,
            borrow_date=loan.borrow_date,
            due_date=loan.due_date,
            return_date=loan.return_date,
            is_returned=loan.is_returned,
            is_overdue=loan.is_overdue(now),
        )
