from app import models
from app import schemas
from app.auth import get_current_user_id, verify_api_key
from app.catalog import CatalogService
from app.clock import Clock, SystemClock
from app.config import configure_logging, settings
from app.database import SessionLocal, engine, get_db
from app.errors import (
    ConflictError,
    ConstraintViolationError,
    IllegalStateError,
    LendingError,
    NotFoundError,
)
from app.jobs import OverdueSweeper
from app.lending import LendingEngine

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.responses import JSONResponse


configure_logging()
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

_clock = SystemClock()


def get_clock() -> Clock:
    """Dependency providing the clock; tests override it with a FrozenClock."""
    return _clock


def get_lending_engine(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> LendingEngine:
    return LendingEngine(db, clock)


def get_catalog(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the daily overdue sweep and stop it on shutdown.

    The sweep runs unless OVERDUE_SWEEP_ENABLED opts out. The running
    sweeper is kept on app.state.overdue_sweeper.
    """
    sweeper = None
    if settings.overdue_sweep_enabled:
        sweeper = OverdueSweeper(
            SessionLocal,
            _clock,
            interval=timedelta(seconds=settings.overdue_sweep_interval_seconds),
        )
        sweeper.start()
    app.state.overdue_sweeper = sweeper
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()


app = FastAPI(
    title="Book Lending API",
    description="Shared book catalog with per-member borrowing, returns and overdue tracking",
    version="1.0.0",
    lifespan=lifespan,
)


ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    IllegalStateError: status.HTTP_400_BAD_REQUEST,
    ConstraintViolationError: status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    """
    Translate business-rule failures into HTTP responses.

    The status code is chosen by error class and the body carries the
    error's stable code, so clients never need to parse the message.
    """
    status_code = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(
        status_code=status_code, content={"detail": str(exc), "code": exc.code}
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is unavailable", "code": "store_error"},
    )


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.
    """
    return {"status": "healthy", "service": "book-lending-api"}


@app.post(
    "/books",
    response_model=schemas.Book,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
def create_book(book: schemas.BookCreate, catalog: CatalogService = Depends(get_catalog)):
    """
    Add a book to the catalog (requires API key).

    Business Logic:
    - ISBN must be unique across all books
    - available_copies starts equal to total_copies

    Raises:
        400 if the ISBN already exists
    """
    return catalog.create_book(**book.model_dump())


@app.get("/books", response_model=List[schemas.Book])
def list_books(catalog: CatalogService = Depends(get_catalog)):
    return catalog.list_books()


@app.get("/books/{book_id}", response_model=schemas.Book)
def get_book(book_id: int, catalog: CatalogService = Depends(get_catalog)):
    """
    Get a specific book by ID.

    Raises:
        404 if book not found
    """
    return catalog.get_book(book_id)


@app.put(
    "/books/{book_id}",
    response_model=schemas.Book,
    dependencies=[Depends(verify_api_key)],
)
def update_book(
    book_id: int,
    book_update: schemas.BookUpdate,
    catalog: CatalogService = Depends(get_catalog),
):
    """
    Update a book's information (requires API key).

    This implements partial updates (PATCH-like behavior with PUT).
    Changing total_copies moves available_copies by the same amount.

    Raises:
        404 if book not found, 400 if ISBN conflict or if fewer copies
        would remain than are currently on loan
    """
    return catalog.update_book(book_id, **book_update.model_dump(exclude_unset=True))


@app.delete(
    "/books/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_api_key)],
)
def delete_book(book_id: int, catalog: CatalogService = Depends(get_catalog)):
    """
    Remove a book (requires API key).

    Raises:
        404 if book not found, 409 while a copy is on loan
    """
    catalog.delete_book(book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/loans/borrow",
    response_model=schemas.Loan,
    status_code=status.HTTP_201_CREATED,
)
def borrow_book(
    request: schemas.BorrowRequest,
    user_id: str = Depends(get_current_user_id),
    lending: LendingEngine = Depends(get_lending_engine),
):
    """
    Borrow one copy of a book for the calling member.

    Business Logic:
    1. The member may hold only one active loan
    2. The book must exist and have an available copy
    3. The loan is due seven days after borrowing

    Raises:
        409 if the member already has a loan or no copy is available,
        404 if book not found
    """
    return lending.borrow(request.book_id, user_id)


@app.post("/loans/return/{loan_id}", response_model=schemas.Loan)
def return_book(
    loan_id: int,
    user_id: str = Depends(get_current_user_id),
    lending: LendingEngine = Depends(get_lending_engine),
):
    """
    Return one of the calling member's loans.

    Raises:
        404 if the loan does not exist or belongs to someone else,
        400 if it was already returned
    """
    return lending.return_loan(loan_id, user_id)


@app.get("/loans/my-loans", response_model=List[schemas.Loan])
def list_my_loans(
    user_id: str = Depends(get_current_user_id),
    lending: LendingEngine = Depends(get_lending_engine),
):
    return lending.list_user_loans(user_id)


@app.get(
    "/loans/all",
    response_model=List[schemas.Loan],
    dependencies=[Depends(verify_api_key)],
)
def list_all_loans(lending: LendingEngine = Depends(get_lending_engine)):
    return lending.list_all_loans()


@app.get(
    "/loans/overdue",
    response_model=List[schemas.Loan],
    dependencies=[Depends(verify_api_key)],
)
def list_overdue_loans(lending: LendingEngine = Depends(get_lending_engine)):
    """
    List active loans whose due date has passed (requires API key).

    Read-only: listing overdue loans never returns or restocks anything.
    """
    return lending.list_overdue_loans()
