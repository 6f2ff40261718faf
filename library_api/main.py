import logging
import subprocess
import sys
from typing import Iterable, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from library_api.book import Book
from library_api.config import Settings
from library_api.database import migrate_from_json
from library_api.errors import LibraryError
from library_api.library import Library

APP_NAME = "Library Lending CLI"

app = typer.Typer(help=APP_NAME)
console = Console()


def _open_library() -> Library:
    """Open the store configured by the current environment."""
    config = Settings()
    logging.basicConfig(level=config.log_level.upper())
    return Library.from_settings(config)


def _fail(exc: LibraryError) -> None:
    typer.echo(f"Error: {exc.message}")
    raise typer.Exit(code=1)


def _print_books(books: Iterable[Book], title: str = "Books") -> None:
    table = Table(title=title, box=box.SIMPLE, header_style="bold cyan")
    table.add_column("ID", style="magenta", justify="right", no_wrap=True)
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Status", no_wrap=True)
    for b in books:
        status = "available" if b.available else f"borrowed by {b.borrower}"
        table.add_row(str(b.id), b.title, b.author, status)
    console.print(table)


def _print_book(book: Book) -> None:
    typer.echo(f"ID: {book.id}")
    typer.echo(f"Title: {book.title}")
    typer.echo(f"Author: {book.author}")
    if book.available:
        typer.echo("Status: available")
    else:
        typer.echo(f"Status: borrowed by {book.borrower} since {book.borrowed_at}")


@app.command("list")
def cli_list(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Filter by title or author"),
    page: int = typer.Option(1, "--page", help="1-based page number"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Books per page"),
):
    """List books in the library."""
    try:
        result = _open_library().list_books(query=query, page=page, limit=limit)
    except LibraryError as e:
        _fail(e)
    if not result.books:
        typer.echo("No books in library.")
        return
    _print_books(result.books, title=f"Books ({result.total} total, page {result.page})")


@app.command("show")
def cli_show(book_id: str):
    """Show a single book."""
    try:
        book = _open_library().find_book(book_id)
    except LibraryError as e:
        _fail(e)
    _print_book(book)


@app.command("add")
def cli_add(title: str, author: str):
    """Add a book by title and author."""
    try:
        book = _open_library().add_book(title, author)
    except LibraryError as e:
        _fail(e)
    typer.echo(f"Successfully added #{book.id}: {book.title} by {book.author}")


@app.command("borrow")
def cli_borrow(book_id: str, borrower: str):
    """Lend a book to a borrower."""
    try:
        book = _open_library().borrow_book(book_id, borrower)
    except LibraryError as e:
        _fail(e)
    typer.echo(f"Book #{book.id} borrowed by {book.borrower}.")


@app.command("return")
def cli_return(book_id: str):
    """Mark a borrowed book as returned."""
    try:
        book = _open_library().return_book(book_id)
    except LibraryError as e:
        _fail(e)
    typer.echo(f"Book #{book.id} has been returned.")


@app.command("remove")
def cli_remove(book_id: str):
    """Delete a book."""
    try:
        removed_id = _open_library().remove_book(book_id)
    except LibraryError as e:
        _fail(e)
    typer.echo(f"Book #{removed_id} has been removed.")


@app.command("migrate")
def cli_migrate(
    source: Optional[str] = typer.Option(None, "--source", help="JSON data file (default: LIBRARY_DATA_FILE)"),
    target: Optional[str] = typer.Option(None, "--target", help="SQLite file (default: LIBRARY_DB_FILE)"),
):
    """Copy books from the JSON data file into an empty SQLite database."""
    config = Settings()
    logging.basicConfig(level=config.log_level.upper())
    source = source or config.data_file
    target = target or config.database_file
    try:
        imported = migrate_from_json(source, target)
    except LibraryError as e:
        _fail(e)
    typer.echo(f"Migrated {imported} books from {source} to {target}.")


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Start the HTTP API with uvicorn."""
    config = Settings()
    host = config.api_host
    port = int(config.api_port)
    typer.echo(f"Starting API on http://{host}:{port}{config.api_prefix}/books")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_api.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        typer.echo("Error: could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        typer.echo("Server stopped.")


if __name__ == "__main__":
    app()
