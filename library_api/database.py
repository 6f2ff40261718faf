import json
import logging
import os
import sqlite3
from typing import Any, Optional, Tuple

from library_api.book import utc_now
from library_api.errors import StorageError
from library_api.validation import MAX_BOOK_ID

logger = logging.getLogger(__name__)

# Seconds a connection waits for another writer to release the database lock
BUSY_TIMEOUT = 5.0


def get_db_connection(db_file: str) -> sqlite3.Connection:
    """Open a connection to the SQLite database file."""
    conn = sqlite3.connect(db_file, timeout=BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def create_tables(db_file: str) -> None:
    """Create the books table and its indexes if they don't exist."""
    directory = os.path.dirname(os.path.abspath(db_file))
    os.makedirs(directory, exist_ok=True)
    conn = get_db_connection(db_file)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER NOT NULL UNIQUE,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                available INTEGER NOT NULL DEFAULT 1,
                borrower TEXT,
                borrowed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        conn.commit()
    finally:
        conn.close()


def migrate_from_json(json_file: str, db_file: str) -> int:
    """Import books from a JSON data file into the SQLite database.

    This is a one-time operation: nothing happens if the table already has
    rows or the JSON file doesn't exist. Records without a usable id, title
    or author are skipped. A record marked unavailable but lacking a borrower
    is imported as available. Returns the number of imported books.
    """
    create_tables(db_file)
    conn = get_db_connection(db_file)
    try:
        book_count = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        if book_count > 0:
            return 0  # Database already has data
        if not os.path.exists(json_file):
            return 0

        logger.info(f"Migrating books from {json_file} to {db_file}")
        try:
            with open(json_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {json_file}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"{json_file} must contain a JSON array of books")

        rows = []
        for item in data:
            row = _migration_row(item)
            if row is None:
                logger.warning(f"Skipping unusable book record: {item!r}")
                continue
            rows.append(row)

        if rows:
            cursor = conn.executemany(
                "INSERT OR IGNORE INTO books "
                "(id, title, author, available, borrower, borrowed_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            conn.commit()
            imported = cursor.rowcount
        else:
            imported = 0
        logger.info(f"Migrated {imported} books")
        return imported
    finally:
        conn.close()


def _migration_row(item: Any) -> Optional[Tuple]:
    if not isinstance(item, dict) or not all(k in item for k in ("id", "title", "author")):
        return None
    raw_id = item["id"]
    if isinstance(raw_id, bool):
        return None
    try:
        book_id = int(raw_id)
    except (TypeError, ValueError, OverflowError):
        return None
    if book_id < 0 or book_id > MAX_BOOK_ID:
        return None
    title, author = item["title"], item["author"]
    if not isinstance(title, str) or not isinstance(author, str) or not title.strip() or not author.strip():
        return None

    borrower = item.get("borrower")
    has_borrower = isinstance(borrower, str) and bool(borrower.strip())
    # An unavailable book must name its borrower
    available = item.get("available", True) is not False or not has_borrower
    now = utc_now()
    return (
        book_id,
        title.strip(),
        author.strip(),
        1 if available else 0,
        None if available else borrower.strip(),
        None if available else (item.get("borrowedAt") or now),
        item.get("createdAt") or item.get("updatedAt") or now,
        item.get("updatedAt") or item.get("createdAt") or now,
    )
