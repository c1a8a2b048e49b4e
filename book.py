from __future__ import annotations


class Book:
    """Represents a single book item in the library catalog."""

    def __init__(self, id: int | None, title: str, author: str, isbn: str, category: str | None = None,
                 available: bool = True, added_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.category = category
        self.available = bool(available)
        self.added_at = added_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "category": self.category,
            "available": self.available,
            "added_at": self.added_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite hands booleans back as 0/1
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            category=data.get("category"),
            available=bool(data.get("available", True)),
            added_at=data.get("added_at"),
        )
