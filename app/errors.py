class LendingError(Exception):
    """
    Base class for business-rule failures.

    Every subclass carries a stable ``code`` so callers can branch on the
    kind of failure without inspecting the message text.
    """

    code = "lending_error"


class NotFoundError(LendingError):
    code = "not_found"


class ConflictError(LendingError):
    code = "conflict"


class IllegalStateError(LendingError):
    code = "illegal_state"


class ConstraintViolationError(LendingError):
    code = "constraint_violation"


class BookNotFoundError(NotFoundError):
    def __init__(self, book_id):
        super().__init__(f"Book with id {book_id} not found")
        self.book_id = book_id


class LoanNotFoundError(NotFoundError):
    """Raised for unknown loans and for loans owned by another user alike."""

    def __init__(self, loan_id):
        super().__init__(f"Loan with id {loan_id} not found")
        self.loan_id = loan_id


class ActiveLoanConflictError(ConflictError):
    def __init__(self, user_id):
        super().__init__("Member can only borrow one book at a time")
        self.user_id = user_id


class BookUnavailableError(ConflictError):
    def __init__(self, book_id):
        super().__init__(f"Book with id {book_id} has no available copies")
        self.book_id = book_id


class BookHasActiveLoansError(ConflictError):
    def __init__(self, book_id):
        super().__init__(f"Book with id {book_id} is currently on loan")
        self.book_id = book_id


class LoanAlreadyReturnedError(IllegalStateError):
    def __init__(self, loan_id):
        super().__init__("This book has already been returned")
        self.loan_id = loan_id


class DuplicateIsbnError(ConstraintViolationError):
    def __init__(self, isbn):
        super().__init__(f"Book with ISBN {isbn} already exists")
        self.isbn = isbn


class CopyCountError(ConstraintViolationError):
    def __init__(self, book_id, total_copies):
        super().__init__(
            f"Cannot set total copies of book {book_id} to {total_copies}: "
            "more copies than that are currently on loan"
        )
        self.book_id = book_id
        self.total_copies = total_copies
