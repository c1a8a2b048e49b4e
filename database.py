import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from dotenv import load_dotenv

from config import settings
from errors import StorageError

# Make sure .env is loaded before the environment is read below, whatever
# order the modules were imported in.
load_dotenv()

logger = logging.getLogger(__name__)

SQLITE_PREFIX = "sqlite:///"


def database_path_from_url(url: str) -> str:
    """Resolve a DATABASE_URL into a SQLite file path.

    Accepts ``sqlite:///relative.db``, ``sqlite:////absolute/path.db`` or a
    bare file path. Any other scheme is rejected.
    """
    url = (url or "").strip()
    if not url:
        raise ValueError("DATABASE_URL is empty.")
    if url.startswith(SQLITE_PREFIX):
        path = url[len(SQLITE_PREFIX):]
        if not path:
            raise ValueError(f"No database file in {url!r}.")
        return path
    if "://" in url:
        raise ValueError(f"Unsupported database URL scheme: {url.split('://', 1)[0]!r}")
    return url


# Explicit database file override (tests and scripts). When unset, the file
# named by DATABASE_URL is resolved on every connect.
DATABASE_FILE = os.environ.get("LIBRARY_DB_FILE")


def database_file() -> str:
    """Return the SQLite file to use, raising StorageError for an unusable DATABASE_URL."""
    if DATABASE_FILE:
        return DATABASE_FILE
    try:
        return database_path_from_url(settings.database_url)
    except ValueError as e:
        raise StorageError(f"Invalid DATABASE_URL: {e}") from e


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def get_db_connection() -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; multi-statement writes go through
    :func:`transaction`.
    """
    conn = sqlite3.connect(database_file(), timeout=settings.database_timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    # Unicode-aware case folding; SQLite's LOWER() only handles ASCII.
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block of statements atomically, holding the write lock from the start."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def create_tables() -> None:
    """Creates the necessary tables in the database if they don't exist."""
    conn = get_db_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                name TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'student',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT UNIQUE NOT NULL,
                category TEXT,
                available BOOLEAN NOT NULL DEFAULT 1,
                added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS borrow_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                borrowed_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                due_date TIMESTAMP,
                returned_date TIMESTAMP,
                status TEXT NOT NULL DEFAULT 'borrowed' CHECK(status IN ('borrowed', 'returned')),
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user_status ON borrow_records(user_id, status)")
        # A book can be out on at most one loan at a time.
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_borrow_records_active_book "
            "ON borrow_records(book_id) WHERE status = 'borrowed'"
        )
    finally:
        conn.close()


def initialize_database() -> bool:
    """Create the schema, logging instead of raising when the database is unusable.

    Returns True when the tables are ready. Startup carries on either way; requests
    against a broken database then fail one by one with a storage error.
    """
    try:
        create_tables()
    except (sqlite3.Error, StorageError):
        logger.exception("Database setup failed for %s", DATABASE_FILE or settings.database_url)
        return False
    logger.info("Database tables ready at %s", database_file())
    return True


def database_time() -> str:
    """Return the database server's current timestamp."""
    conn = get_db_connection()
    try:
        return conn.execute("SELECT CURRENT_TIMESTAMP AS now").fetchone()["now"]
    finally:
        conn.close()
