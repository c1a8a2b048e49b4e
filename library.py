import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from book import Book
from borrow_record import BORROWED, RETURNED, BorrowRecord, Loan
from config import settings
from database import get_db_connection, transaction
from errors import (
    AlreadyReturnedError,
    BookNotAvailableError,
    NotFoundError,
    StorageError,
    translate_integrity_error,
)
from utils.validators import TextValidator

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Library:
    """Manages the book catalog and the borrow/return circulation.

    Every operation opens its own connection, so instances hold no state
    and can be shared between requests.
    """

    # ------------------------- Catalog ------------------------- #
    def list_books(self, search: Optional[str] = None) -> List[Book]:
        """List books ordered by title, optionally filtered by a title/author substring."""
        query = "SELECT * FROM books"
        params: tuple = ()
        if search:
            pattern = f"%{_escape_like(search.casefold())}%"
            query += " WHERE casefold(title) LIKE ? ESCAPE '\\' OR casefold(author) LIKE ? ESCAPE '\\'"
            params = (pattern, pattern)
        query += " ORDER BY casefold(title), title, id"

        conn = get_db_connection()
        try:
            rows = conn.execute(query, params).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        except sqlite3.Error as e:
            raise StorageError("Failed to fetch books") from e
        finally:
            conn.close()

    def find_book(self, book_id: int) -> Optional[Book]:
        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            return Book.from_dict(dict(row)) if row else None
        except sqlite3.Error as e:
            raise StorageError("Failed to fetch book") from e
        finally:
            conn.close()

    def add_book(self, title: str, author: str, isbn: str, category: Optional[str] = None) -> Book:
        """Add a book to the catalog. New books are always available."""
        title = TextValidator.require(title, "title")
        author = TextValidator.require(author, "author")
        isbn = TextValidator.require(isbn, "isbn")
        category = TextValidator.optional(category)

        conn = get_db_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO books (title, author, isbn, category) VALUES (?, ?, ?, ?)",
                (title, author, isbn, category),
            )
            row = conn.execute("SELECT * FROM books WHERE id = ?", (cursor.lastrowid,)).fetchone()
        except sqlite3.IntegrityError as e:
            raise translate_integrity_error(e, f"Book with ISBN {isbn} already exists.") from e
        except sqlite3.Error as e:
            raise StorageError("Failed to add book") from e
        finally:
            conn.close()
        return Book.from_dict(dict(row))

    def update_book(self, book_id: int, *, title: str, author: str, isbn: str, category: Optional[str],
                    available: bool) -> Book:
        """Replace every mutable field of a book. Raises NotFoundError for an unknown id."""
        title = TextValidator.require(title, "title")
        author = TextValidator.require(author, "author")
        isbn = TextValidator.require(isbn, "isbn")
        category = TextValidator.optional(category)

        conn = get_db_connection()
        try:
            cursor = conn.execute(
                "UPDATE books SET title = ?, author = ?, isbn = ?, category = ?, available = ? WHERE id = ?",
                (title, author, isbn, category, bool(available), book_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Book not found")
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        except sqlite3.IntegrityError as e:
            raise translate_integrity_error(e, f"Book with ISBN {isbn} already exists.") from e
        except sqlite3.Error as e:
            raise StorageError("Failed to update book") from e
        finally:
            conn.close()
        return Book.from_dict(dict(row))

    def remove_book(self, book_id: int) -> None:
        """Delete a book; its borrow records go with it."""
        conn = get_db_connection()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Book not found")
        except sqlite3.Error as e:
            raise StorageError("Failed to delete book") from e
        finally:
            conn.close()

    # ------------------------- Circulation ------------------------- #
    def borrow_book(self, book_id: int, user_id: int) -> BorrowRecord:
        """Lend a book to a user for the loan period.

        The availability flip, the user check and the record insert commit
        together; if any step fails the book stays available.
        """
        borrowed = _utcnow()
        due = borrowed + timedelta(days=settings.loan_period_days)

        conn = get_db_connection()
        try:
            with transaction(conn):
                cursor = conn.execute(
                    "UPDATE books SET available = 0 WHERE id = ? AND available = 1", (book_id,)
                )
                if cursor.rowcount == 0:
                    raise BookNotAvailableError()
                if conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
                    raise NotFoundError("User not found")
                cursor = conn.execute(
                    "INSERT INTO borrow_records (book_id, user_id, borrowed_date, due_date, status) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (book_id, user_id, borrowed.strftime(TIMESTAMP_FORMAT), due.strftime(TIMESTAMP_FORMAT),
                     BORROWED),
                )
                row = conn.execute("SELECT * FROM borrow_records WHERE id = ?", (cursor.lastrowid,)).fetchone()
        except sqlite3.IntegrityError as e:
            # An open loan already exists although the flag said available.
            if "UNIQUE" in str(e).upper():
                raise BookNotAvailableError() from e
            raise translate_integrity_error(e, "Book not available") from e
        except sqlite3.Error as e:
            raise StorageError("Failed to borrow book") from e
        finally:
            conn.close()

        record = BorrowRecord.from_dict(dict(row))
        logger.info("Book id=%s borrowed by user id=%s, due %s", book_id, user_id, record.due_date)
        return record

    def return_book(self, record_id: int) -> BorrowRecord:
        """Close an open borrow record and make its book available again.

        A record that was already returned is rejected, so a stale return
        cannot free a book somebody else has borrowed since.
        """
        returned = _utcnow().strftime(TIMESTAMP_FORMAT)

        conn = get_db_connection()
        try:
            with transaction(conn):
                row = conn.execute("SELECT * FROM borrow_records WHERE id = ?", (record_id,)).fetchone()
                if row is None:
                    raise NotFoundError("Borrow record not found")
                cursor = conn.execute(
                    "UPDATE borrow_records SET returned_date = ?, status = ? WHERE id = ? AND status = ?",
                    (returned, RETURNED, record_id, BORROWED),
                )
                if cursor.rowcount == 0:
                    raise AlreadyReturnedError()
                conn.execute("UPDATE books SET available = 1 WHERE id = ?", (row["book_id"],))
                row = conn.execute("SELECT * FROM borrow_records WHERE id = ?", (record_id,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError("Failed to return book") from e
        finally:
            conn.close()

        record = BorrowRecord.from_dict(dict(row))
        logger.info("Borrow record id=%s returned (book id=%s)", record.id, record.book_id)
        return record

    def list_user_loans(self, user_id: int) -> List[Loan]:
        """Books a user currently has out, soonest due first."""
        conn = get_db_connection()
        try:
            rows = conn.execute(
                """
                SELECT b.*, br.borrowed_date, br.due_date, br.status, br.id AS record_id
                FROM borrow_records br
                JOIN books b ON br.book_id = b.id
                WHERE br.user_id = ? AND br.status = ?
                ORDER BY br.due_date, br.id
                """,
                (user_id, BORROWED),
            ).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]
        except sqlite3.Error as e:
            raise StorageError("Failed to fetch borrowed books") from e
        finally:
            conn.close()
