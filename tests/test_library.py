import threading
from datetime import datetime, timedelta

import pytest

import database
import library as library_module
from errors import (
    AlreadyReturnedError,
    BookNotAvailableError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)

FMT = "%Y-%m-%d %H:%M:%S"


def _record_count(book_id=None):
    conn = database.get_db_connection()
    try:
        if book_id is None:
            return conn.execute("SELECT COUNT(*) FROM borrow_records").fetchone()[0]
        return conn.execute("SELECT COUNT(*) FROM borrow_records WHERE book_id = ?", (book_id,)).fetchone()[0]
    finally:
        conn.close()


# ------------------------- Catalog ------------------------- #
def test_add_and_list(lib):
    assert lib.list_books() == []

    book = lib.add_book("Dune", "Herbert", "111")
    books = lib.list_books()

    assert [b.id for b in books] == [book.id]
    assert books[0].available is True
    assert books[0].category is None
    assert books[0].added_at is not None


def test_list_ordered_by_title(lib):
    lib.add_book("Neuromancer", "Gibson", "3")
    lib.add_book("Dune", "Herbert", "1")
    lib.add_book("Emma", "Austen", "2")
    assert [b.title for b in lib.list_books()] == ["Dune", "Emma", "Neuromancer"]


def test_list_order_ignores_case(lib):
    lib.add_book("Zebra", "Someone", "1")
    lib.add_book("apple", "Someone", "2")
    lib.add_book("Banana", "Someone", "3")
    assert [b.title for b in lib.list_books()] == ["apple", "Banana", "Zebra"]


def test_search_is_case_insensitive_substring(lib):
    lib.add_book("Dune", "Frank Herbert", "1")
    lib.add_book("Children of Dune", "Frank Herbert", "2")
    lib.add_book("Emma", "Jane Austen", "3")

    assert [b.title for b in lib.list_books("UNE")] == ["Children of Dune", "Dune"]
    assert [b.title for b in lib.list_books("austen")] == ["Emma"]
    assert lib.list_books("xyz") == []


def test_search_folds_non_ascii_case(lib):
    lib.add_book("Über Alles", "Émile Zola", "1")
    lib.add_book("Germinal", "Émile Zola", "2")
    lib.add_book("Straße", "Someone", "3")

    assert [b.title for b in lib.list_books("über")] == ["Über Alles"]
    assert [b.title for b in lib.list_books("émile")] == ["Germinal", "Über Alles"]
    assert [b.title for b in lib.list_books("ÉMILE ZOLA")] == ["Germinal", "Über Alles"]
    assert [b.title for b in lib.list_books("STRASSE")] == ["Straße"]


def test_search_treats_wildcards_literally(lib):
    lib.add_book("100% Pure", "Someone", "1")
    lib.add_book("Plain", "Other", "2")
    assert [b.title for b in lib.list_books("%")] == ["100% Pure"]
    assert lib.list_books("_") == []


def test_empty_search_lists_everything(lib):
    lib.add_book("Dune", "Herbert", "1")
    assert len(lib.list_books("")) == 1


def test_add_duplicate_isbn(lib, dune):
    with pytest.raises(DuplicateError, match="111"):
        lib.add_book("Other", "Someone", "111")
    assert len(lib.list_books()) == 1


def test_add_rejects_blank_fields(lib):
    with pytest.raises(ValidationError):
        lib.add_book("  ", "Author", "1")
    with pytest.raises(ValidationError):
        lib.add_book("Title", "Author", "")


def test_update_replaces_all_fields(lib, dune):
    updated = lib.update_book(dune.id, title="Dune Messiah", author="F. Herbert", isbn="222",
                              category="Sci-Fi", available=False)
    assert updated.to_dict() == {
        "id": dune.id,
        "title": "Dune Messiah",
        "author": "F. Herbert",
        "isbn": "222",
        "category": "Sci-Fi",
        "available": False,
        "added_at": dune.added_at,
    }
    assert lib.find_book(dune.id).isbn == "222"


def test_update_not_found(lib):
    with pytest.raises(NotFoundError):
        lib.update_book(999, title="T", author="A", isbn="1", category=None, available=True)


def test_update_duplicate_isbn(lib, dune):
    other = lib.add_book("Emma", "Austen", "222")
    with pytest.raises(DuplicateError):
        lib.update_book(other.id, title="Emma", author="Austen", isbn="111", category=None, available=True)


def test_remove_book(lib, dune):
    lib.remove_book(dune.id)
    assert lib.find_book(dune.id) is None
    with pytest.raises(NotFoundError):
        lib.remove_book(dune.id)


# ------------------------- Circulation ------------------------- #
def test_borrow_creates_record_and_flips_availability(lib, alice, dune):
    record = lib.borrow_book(dune.id, alice.id)

    assert record.status == "borrowed"
    assert record.returned_date is None
    assert record.book_id == dune.id and record.user_id == alice.id
    borrowed = datetime.strptime(record.borrowed_date, FMT)
    due = datetime.strptime(record.due_date, FMT)
    assert due - borrowed == timedelta(days=14)
    assert lib.find_book(dune.id).available is False
    assert _record_count(dune.id) == 1


def test_borrow_unavailable_book_fails_for_everyone(lib, alice, bob, dune):
    lib.borrow_book(dune.id, alice.id)
    with pytest.raises(BookNotAvailableError, match="Book not available"):
        lib.borrow_book(dune.id, bob.id)
    with pytest.raises(BookNotAvailableError):
        lib.borrow_book(dune.id, alice.id)
    assert _record_count(dune.id) == 1


def test_borrow_unknown_book(lib, alice):
    with pytest.raises(BookNotAvailableError):
        lib.borrow_book(999, alice.id)


def test_borrow_unknown_user_leaves_book_available(lib, dune):
    with pytest.raises(NotFoundError, match="User not found"):
        lib.borrow_book(dune.id, 999)
    assert lib.find_book(dune.id).available is True
    assert _record_count() == 0


def test_borrow_when_flag_was_reset_by_hand(lib, alice, bob, dune):
    lib.borrow_book(dune.id, alice.id)
    # an admin marks the book available while the loan is still open
    lib.update_book(dune.id, title="Dune", author="Herbert", isbn="111", category=None, available=True)
    with pytest.raises(BookNotAvailableError):
        lib.borrow_book(dune.id, bob.id)
    assert _record_count(dune.id) == 1


def test_return_book(lib, alice, dune):
    record = lib.borrow_book(dune.id, alice.id)
    returned = lib.return_book(record.id)

    assert returned.status == "returned"
    assert returned.returned_date is not None
    assert lib.find_book(dune.id).available is True
    assert lib.list_user_loans(alice.id) == []


def test_return_unknown_record(lib):
    with pytest.raises(NotFoundError, match="Borrow record not found"):
        lib.return_book(999)


def test_stale_return_does_not_free_reborrowed_book(lib, alice, bob, dune):
    first = lib.borrow_book(dune.id, alice.id)
    lib.return_book(first.id)
    lib.borrow_book(dune.id, bob.id)

    with pytest.raises(AlreadyReturnedError):
        lib.return_book(first.id)
    assert lib.find_book(dune.id).available is False
    assert [loan.book.id for loan in lib.list_user_loans(bob.id)] == [dune.id]


def test_list_user_loans_only_active_and_by_due_date(lib, alice, bob, monkeypatch):
    late = lib.add_book("Alpha", "A", "1")
    early = lib.add_book("Beta", "B", "2")
    gone = lib.add_book("Gamma", "C", "3")
    other = lib.add_book("Delta", "D", "4")

    monkeypatch.setattr(library_module, "_utcnow", lambda: datetime(2026, 3, 10, 9, 0, 0))
    lib.borrow_book(late.id, alice.id)
    monkeypatch.setattr(library_module, "_utcnow", lambda: datetime(2026, 3, 1, 9, 0, 0))
    lib.borrow_book(early.id, alice.id)
    returned = lib.borrow_book(gone.id, alice.id)
    lib.return_book(returned.id)
    lib.borrow_book(other.id, bob.id)

    loans = lib.list_user_loans(alice.id)
    assert [loan.book.title for loan in loans] == ["Beta", "Alpha"]
    assert loans[0].due_date == "2026-03-15 09:00:00"
    assert all(loan.status == "borrowed" for loan in loans)
    data = loans[0].to_dict()
    assert data["id"] == early.id
    assert {"borrowed_date", "due_date", "status", "record_id"} <= data.keys()


def test_delete_book_cascades_records(lib, alice, dune):
    lib.borrow_book(dune.id, alice.id)
    lib.remove_book(dune.id)

    assert _record_count() == 0
    assert lib.list_user_loans(alice.id) == []


def test_concurrent_borrows_only_one_wins(lib, alice, bob, dune):
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def attempt(user_id):
        barrier.wait()
        try:
            outcome = lib.borrow_book(dune.id, user_id)
        except BookNotAvailableError as e:
            outcome = e
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in (alice.id, bob.id)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    errors = [r for r in results if isinstance(r, BookNotAvailableError)]
    assert len(results) == 2
    assert len(errors) == 1
    assert _record_count(dune.id) == 1
    assert lib.find_book(dune.id).available is False
