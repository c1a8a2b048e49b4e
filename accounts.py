"""User registration and authentication.

Passwords are salted and hashed with werkzeug before they reach the
database, and login verifies them with werkzeug's constant-time check.
No session or token is issued: a successful login only returns the user.
"""

import logging
import sqlite3
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from config import settings
from database import get_db_connection
from errors import InvalidCredentialsError, StorageError, translate_integrity_error
from user import User
from utils.validators import EmailValidator, TextValidator

logger = logging.getLogger(__name__)

# Compared against when the e-mail is unknown, so a miss costs as much as a wrong password.
_DUMMY_HASH = generate_password_hash("library-dummy-password")


class Accounts:
    """Registers users and checks their credentials against the users table."""

    def register(self, email: str, password: str, name: str, role: Optional[str] = None) -> User:
        email = EmailValidator.require(email)
        # checked but not stripped: whitespace is part of the password
        TextValidator.require(password, "password")
        name = TextValidator.require(name, "name")
        role = TextValidator.optional(role) or settings.default_role

        conn = get_db_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO users (email, password_hash, name, role) VALUES (?, ?, ?, ?)",
                (email, generate_password_hash(password), name, role),
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (cursor.lastrowid,)).fetchone()
        except sqlite3.IntegrityError as e:
            raise translate_integrity_error(e, f"Email {email} is already registered.") from e
        except sqlite3.Error as e:
            raise StorageError("Registration failed") from e
        finally:
            conn.close()

        user = User.from_dict(dict(row))
        logger.info("Registered user id=%s role=%s", user.id, user.role)
        return user

    def authenticate(self, email: str, password: str) -> User:
        """Return the user whose e-mail and password match, or raise InvalidCredentialsError."""
        email = EmailValidator.normalize_email(email)
        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError("Login failed") from e
        finally:
            conn.close()

        if row is None:
            check_password_hash(_DUMMY_HASH, password or "")
            logger.warning("Failed login for unknown email")
            raise InvalidCredentialsError()
        if not check_password_hash(row["password_hash"], password or ""):
            logger.warning("Failed login for user id=%s", row["id"])
            raise InvalidCredentialsError()
        return User.from_dict(dict(row))
