import re
from typing import Optional

from errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


class TextValidator:
    """Basic text checks applied before anything is written to the database."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not str(text).strip()

    @staticmethod
    def require(text: Optional[str], field: str) -> str:
        """Return the stripped value, or raise ValidationError when it is blank."""
        if TextValidator.is_blank(text):
            raise ValidationError(f"{field} is required.")
        return str(text).strip()

    @staticmethod
    def optional(text: Optional[str]) -> Optional[str]:
        # blank optional fields are stored as NULL
        if TextValidator.is_blank(text):
            return None
        return str(text).strip()


class EmailValidator:
    """Loose e-mail shape check: something@something, no whitespace."""

    @staticmethod
    def normalize_email(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip().lower()

    @staticmethod
    def require(raw: Optional[str]) -> str:
        email = EmailValidator.normalize_email(raw)
        if not email:
            raise ValidationError("email is required.")
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid email address: {raw}")
        return email
