import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


_ISBN10 = re.compile(r"^\d{9}[\dX]$")
_ISBN13 = re.compile(r"^97[89]\d{10}$")


def normalize_isbn(value: str) -> str:
    """
    Strip separators and an optional "ISBN" prefix, then check the shape.

    Accepts ISBN-10 (last character may be X) and ISBN-13 (978/979 prefix).
    """
    compact = re.sub(r"^ISBN(?:-1[03])?:?\s*", "", value.strip(), flags=re.IGNORECASE)
    compact = re.sub(r"[\s-]", "", compact).upper()
    if not (_ISBN10.match(compact) or _ISBN13.match(compact)):
        raise ValueError("Invalid ISBN format")
    return compact


class BookBase(BaseModel):
    """Base schema with common book fields."""

    title: str = Field(..., min_length=1, max_length=50)
    author: str = Field(..., min_length=1, max_length=50)
    isbn: str = Field(..., min_length=10, max_length=26)

    @field_validator("isbn")
    @classmethod
    def check_isbn(cls, value: str) -> str:
        return normalize_isbn(value)


class BookCreate(BookBase):
    """
    Schema for creating a new book.

    Every new book starts with all of its copies available.
    """

    total_copies: int = Field(..., ge=1, le=100)


class BookUpdate(BaseModel):
    """
    Schema for updating a book.

    All fields are optional to support partial updates.
    Only provided fields will be updated. A new total_copies shifts
    available_copies by the same difference.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=50)
    author: Optional[str] = Field(None, min_length=1, max_length=50)
    isbn: Optional[str] = Field(None, min_length=10, max_length=26)
    total_copies: Optional[int] = Field(None, ge=1, le=100)

    @field_validator("isbn")
    @classmethod
    def check_isbn(cls, value: Optional[str]) -> Optional[str]:
        return normalize_isbn(value) if value is not None else value


class Book(BookBase):
    """
    Schema for book responses.

    Internal Working:
    - from_attributes=True lets Pydantic read ORM objects directly
    - is_available is a property on the ORM model, read like any column
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    total_copies: int
    available_copies: int
    is_available: bool


class BorrowRequest(BaseModel):
    """Body of a borrow request; the borrower comes from the caller identity."""

    book_id: int = Field(..., gt=0)


class Loan(BaseModel):
    """
    Loan as presented to callers.

    book_title is denormalized from the catalog by the lending engine. It
    is empty when the book has since been removed from the catalog.
    is_overdue is evaluated against the engine's clock when the view is built.
    """

    id: int
    book_id: int
    book_title: str
    user_id: str
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    is_returned: bool
    is_overdue: bool
