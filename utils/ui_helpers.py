import os
import json
from typing import List, Any
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_list_result(books: List[Any]) -> None:
    """Print a list of books in the current output mode.
    - plain: '[id] Title by Author (ISBN) - available|borrowed' lines, or 'No books in library.'
    - json: JSON array of the book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("ISBN", style="white", no_wrap=True)
        table.add_column("Status")
        for b in books:
            status = "[green]available[/]" if b.available else "[red]borrowed[/]"
            table.add_row(str(b.id), b.title, b.author, b.isbn, status)
        _console.print(table)
    else:
        for b in books:
            status = "available" if b.available else "borrowed"
            print(f"[{b.id}] {b.title} by {b.author} ({b.isbn}) - {status}")


def print_loans_result(loans: List[Any]) -> None:
    """Print a user's active loans in the current output mode."""
    mode = get_output_mode()

    if not loans:
        print("No active loans.")
        return

    if mode == "json":
        print(json.dumps([loan.to_dict() for loan in loans], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Active loans", show_lines=True, header_style="bold cyan")
        table.add_column("Record", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Borrowed", style="white")
        table.add_column("Due", style="yellow")
        for loan in loans:
            table.add_row(str(loan.record_id), loan.book.title, str(loan.borrowed_date), str(loan.due_date))
        _console.print(table)
    else:
        for loan in loans:
            print(f"#{loan.record_id} {loan.book.title} - due {loan.due_date}")


def print_record_result(action: str, record: Any) -> None:
    """Print the outcome of a borrow or return."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(record.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Record:[/] {record.id}\n[bold]Book:[/] {record.book_id}\n"
            f"[bold]User:[/] {record.user_id}\n[bold]Due:[/] {record.due_date}"
        )
        _console.print(Panel.fit(content, title=f"✅ {action}", border_style="green"))
    else:
        print(f"{action}: record #{record.id} (book {record.book_id}, user {record.user_id}, due {record.due_date})")


def print_book_result(book: Any) -> None:
    """Print the details of a single book."""
    mode = get_output_mode()
    status = "available" if book.available else "borrowed"

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Title:[/] {book.title}\n[bold]Author:[/] {book.author}\n"
            f"[bold]ISBN:[/] {book.isbn}\n[bold]Category:[/] {book.category or '-'}\n[bold]Status:[/] {status}"
        )
        _console.print(Panel.fit(content, title=f"📘 Book #{book.id}", border_style="cyan"))
    else:
        print("Book Found")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"ISBN: {book.isbn}")
        if book.category:
            print(f"Category: {book.category}")
        print(f"Status: {status}")
