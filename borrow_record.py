from __future__ import annotations

from book import Book

BORROWED = "borrowed"
RETURNED = "returned"


class BorrowRecord:
    """One borrow transaction. Starts as ``borrowed``; ``returned`` is terminal."""

    def __init__(self, id: int, book_id: int, user_id: int, borrowed_date: str | None, due_date: str | None,
                 returned_date: str | None = None, status: str = BORROWED) -> None:
        self.id = id
        self.book_id = book_id
        self.user_id = user_id
        self.borrowed_date = borrowed_date
        self.due_date = due_date
        self.returned_date = returned_date
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "user_id": self.user_id,
            "borrowed_date": self.borrowed_date,
            "due_date": self.due_date,
            "returned_date": self.returned_date,
            "status": self.status,
        }

    @staticmethod
    def from_dict(data: dict) -> "BorrowRecord":
        return BorrowRecord(
            id=data["id"],
            book_id=data["book_id"],
            user_id=data["user_id"],
            borrowed_date=data.get("borrowed_date"),
            due_date=data.get("due_date"),
            returned_date=data.get("returned_date"),
            status=data.get("status", BORROWED),
        )


class Loan:
    """An active borrow record joined with the book it refers to."""

    def __init__(self, book: Book, record_id: int, borrowed_date: str | None, due_date: str | None,
                 status: str = BORROWED) -> None:
        self.book = book
        self.record_id = record_id
        self.borrowed_date = borrowed_date
        self.due_date = due_date
        self.status = status

    def to_dict(self) -> dict:
        data = self.book.to_dict()
        data.update({
            "borrowed_date": self.borrowed_date,
            "due_date": self.due_date,
            "status": self.status,
            "record_id": self.record_id,
        })
        return data

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            book=Book.from_dict(data),
            record_id=data["record_id"],
            borrowed_date=data.get("borrowed_date"),
            due_date=data.get("due_date"),
            status=data.get("status", BORROWED),
        )
