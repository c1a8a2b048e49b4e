import logging
import subprocess
import sys
from typing import Optional

import typer

from config import settings
from database import initialize_database
from errors import LibraryError
from library import Library
from utils.ui_helpers import (
    print_book_result,
    print_list_result,
    print_loans_result,
    print_record_result,
    set_output_mode,
)

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

app = typer.Typer(help="Library CLI")


def _fail(error: LibraryError) -> None:
    print(f"Error: {error.message}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, help="Interface to bind"),
    port: int = typer.Option(settings.api_port, help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    command = [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)]
    if reload:
        command.append("--reload")
    subprocess.run(command)


@app.command("init-db")
def cli_init_db():
    """Create the database tables if they don't exist."""
    if not initialize_database():
        print("Database setup failed, see the log for details.")
        raise typer.Exit(code=1)
    print("Database ready.")


@app.command("list")
def cli_list(search: Optional[str] = typer.Option(None, "--search", "-s", help="Title/author substring")):
    """List books, optionally filtered by title or author."""
    try:
        books = Library().list_books(search)
    except LibraryError as e:
        _fail(e)
    print_list_result(books)


@app.command("find")
def cli_find(book_id: int):
    """Find a book by id and show its details."""
    try:
        book = Library().find_book(book_id)
    except LibraryError as e:
        _fail(e)
    if book is None:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)
    print_book_result(book)


@app.command("add")
def cli_add(
    title: str,
    author: str,
    isbn: str,
    category: Optional[str] = typer.Option(None, "--category", "-c"),
):
    """Add a book to the catalog."""
    try:
        book = Library().add_book(title, author, isbn, category)
    except LibraryError as e:
        _fail(e)
    print(f"Successfully added: [{book.id}] {book.title} by {book.author}")


@app.command("remove")
def cli_remove(book_id: int):
    """Delete a book and its borrow history."""
    try:
        Library().remove_book(book_id)
    except LibraryError as e:
        _fail(e)
    print(f"Book {book_id} has been removed.")


@app.command("borrow")
def cli_borrow(book_id: int, user_id: int):
    """Lend a book to a user."""
    try:
        record = Library().borrow_book(book_id, user_id)
    except LibraryError as e:
        _fail(e)
    print_record_result("Borrowed", record)


@app.command("return")
def cli_return(record_id: int):
    """Return a borrowed book."""
    try:
        record = Library().return_book(record_id)
    except LibraryError as e:
        _fail(e)
    print_record_result("Returned", record)


@app.command("loans")
def cli_loans(user_id: int):
    """Show the books a user currently has out."""
    try:
        loans = Library().list_user_loans(user_id)
    except LibraryError as e:
        _fail(e)
    print_loans_result(loans)


if __name__ == "__main__":
    app()
