"""Error taxonomy shared by the account, catalog and circulation handlers.

Each class carries the HTTP status the API layer answers with, so handlers
raise domain errors and never build responses themselves.
"""

import sqlite3


class LibraryError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LibraryError):
    status_code = 400
    default_message = "Invalid input"


class InvalidCredentialsError(LibraryError):
    status_code = 401
    default_message = "Invalid credentials"


class NotFoundError(LibraryError):
    status_code = 404
    default_message = "Not found"


class DuplicateError(LibraryError):
    status_code = 409
    default_message = "Already exists"


class BookNotAvailableError(LibraryError):
    status_code = 400
    default_message = "Book not available"


class AlreadyReturnedError(LibraryError):
    status_code = 400
    default_message = "Book already returned"


class StorageError(LibraryError):
    status_code = 500
    default_message = "Database error"


def translate_integrity_error(exc: sqlite3.IntegrityError, duplicate_message: str) -> LibraryError:
    """Map a SQLite constraint failure onto the taxonomy above."""
    if "UNIQUE" in str(exc).upper():
        return DuplicateError(duplicate_message)
    return ValidationError(f"Constraint violated: {exc}")
