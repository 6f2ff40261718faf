"""Record stores for Book entities.

``BookStore`` is the storage abstraction the rest of the application talks
to. ``JsonFileBookStore`` keeps the records in memory and rewrites a JSON file
on every mutation; ``SqliteBookStore`` queries a SQLite table per call.
"""
import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from library_api.book import Book, utc_now
from library_api.config import Settings
from library_api.database import create_tables, get_db_connection
from library_api.errors import BookNotFoundError, ConflictError, StorageError

logger = logging.getLogger(__name__)


def _apply_fields(book: Book, fields: Dict[str, str]) -> Book:
    for name in ("title", "author"):
        if name in fields:
            setattr(book, name, fields[name])
    return book


class BookStore(ABC):
    """Persistence interface for books. Every returned Book is a copy."""

    @abstractmethod
    def list_all(self, query: Optional[str] = None, page: int = 1,
                 limit: Optional[int] = None) -> Tuple[int, List[Book]]:
        """Return ``(total matches, books on the requested page)`` ordered by id.

        ``page`` and ``limit`` are used as given; callers clamp them. Without
        a ``limit`` every match is returned.
        """

    @abstractmethod
    def get(self, book_id: int) -> Book:
        ...

    @abstractmethod
    def insert(self, book: Book) -> Book:
        """Persist a new book, assigning its id unless one is already set."""

    @abstractmethod
    def modify(self, book_id: int, apply: Callable[[Book], Book]) -> Book:
        """Atomically replace one record with ``apply(copy of current record)``."""

    @abstractmethod
    def remove(self, book_id: int) -> None:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    def replace(self, book_id: int, fields: Dict[str, str]) -> Book:
        """Overwrite the given mutable fields. No fields leaves the record as it is."""
        if not fields:
            return self.get(book_id)
        return self.modify(book_id, lambda book: _apply_fields(book, fields))

    def patch(self, book_id: int, fields: Dict[str, str]) -> Book:
        """Apply a partial update. An empty patch returns the record untouched."""
        if not fields:
            return self.get(book_id)
        return self.modify(book_id, lambda book: _apply_fields(book, fields))

    @staticmethod
    def _offset(page: int, limit: Optional[int]) -> int:
        return (page - 1) * limit if limit else 0

    @staticmethod
    def _stamp_update(current: Book, updated: Book) -> Book:
        # id and creation time never change after insert
        updated.id = current.id
        updated.created_at = current.created_at
        updated.updated_at = utc_now()
        return updated


class JsonFileBookStore(BookStore):
    """Books held in memory and mirrored to a single JSON array on disk."""

    def __init__(self, data_file) -> None:
        self.data_file = Path(data_file)
        self._lock = threading.RLock()
        self._books: List[Book] = self._load()

    # ------------------------- Persistence ------------------------- #
    def _load(self) -> List[Book]:
        if not self.data_file.exists():
            return []
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self.data_file}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"{self.data_file} must contain a JSON array of books")
        try:
            return [Book.from_dict(item) for item in data]
        except (KeyError, TypeError, AttributeError) as e:
            raise StorageError(f"Malformed book record in {self.data_file}: {e}") from e

    def _save(self, books: List[Book]) -> None:
        tmp_file = self.data_file.with_name(self.data_file.name + ".tmp")
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump([b.to_dict() for b in books], f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.data_file)
        except OSError as e:
            logger.error(f"Failed to write {self.data_file}: {e}")
            raise StorageError(f"Could not write {self.data_file}: {e}") from e

    def _commit(self, books: List[Book]) -> None:
        """Write first, then swap the in-memory list, so a failed write changes nothing."""
        self._save(books)
        self._books = books

    def _index_of(self, book_id: int) -> int:
        for index, book in enumerate(self._books):
            if book.id == book_id:
                return index
        raise BookNotFoundError(book_id)

    # ------------------------- Core operations ------------------------- #
    def list_all(self, query=None, page=1, limit=None):
        with self._lock:
            books = sorted(self._books, key=lambda b: b.id)
        if query:
            needle = query.casefold()
            books = [b for b in books if needle in b.title.casefold() or needle in b.author.casefold()]
        offset = self._offset(page, limit)
        window = books[offset:offset + limit] if limit else books[offset:]
        return len(books), [b.copy() for b in window]

    def get(self, book_id: int) -> Book:
        with self._lock:
            return self._books[self._index_of(book_id)].copy()

    def insert(self, book: Book) -> Book:
        with self._lock:
            new_id = book.id if book.id is not None else self._next_id()
            if any(b.id == new_id for b in self._books):
                logger.warning(f"Duplicate book id {new_id} rejected")
                raise ConflictError(f"Book with id {new_id} already exists")
            new_book = book.copy()
            new_book.id = new_id
            new_book.created_at = new_book.updated_at = utc_now()
            self._commit(self._books + [new_book])
            logger.info(f"Book {new_id} created")
            return new_book.copy()

    def modify(self, book_id: int, apply: Callable[[Book], Book]) -> Book:
        with self._lock:
            index = self._index_of(book_id)
            current = self._books[index]
            updated = self._stamp_update(current, apply(current.copy()))
            books = list(self._books)
            books[index] = updated
            self._commit(books)
            return updated.copy()

    def remove(self, book_id: int) -> None:
        with self._lock:
            index = self._index_of(book_id)
            self._commit(self._books[:index] + self._books[index + 1:])
            logger.info(f"Book {book_id} deleted")

    def count(self) -> int:
        with self._lock:
            return len(self._books)

    def _next_id(self) -> int:
        return max((b.id for b in self._books), default=0) + 1


class SqliteBookStore(BookStore):
    """Books stored as rows of a SQLite table, one connection per call."""

    _COLUMNS = "id, title, author, available, borrower, borrowed_at, created_at, updated_at"

    def __init__(self, db_file) -> None:
        self.db_file = str(db_file)
        with self._storage_errors():
            create_tables(self.db_file)

    @contextmanager
    def _storage_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity error on {self.db_file}: {e}")
            raise ConflictError(f"Duplicate book id: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Database error on {self.db_file}: {e}")
            raise StorageError(f"Database error: {e}") from e

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._storage_errors():
            conn = get_db_connection(self.db_file)
            try:
                yield conn
            finally:
                conn.close()

    @staticmethod
    def _row_to_book(row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            available=bool(row["available"]),
            borrower=row["borrower"],
            borrowed_at=row["borrowed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _fetch(conn: sqlite3.Connection, book_id: int) -> Book:
        row = conn.execute(
            f"SELECT {SqliteBookStore._COLUMNS} FROM books WHERE id = ?", (book_id,)
        ).fetchone()
        if row is None:
            raise BookNotFoundError(book_id)
        return SqliteBookStore._row_to_book(row)

    def list_all(self, query=None, page=1, limit=None):
        offset = self._offset(page, limit)
        where, params = "", ()
        if query:
            escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{escaped}%"
            where = "WHERE title LIKE ? ESCAPE '\\' OR author LIKE ? ESCAPE '\\'"
            params = (pattern, pattern)
        with self._connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM books {where}", params).fetchone()[0]
            # SQLite integers are 64-bit; a page past the end never reaches the query
            if offset >= total:
                return total, []
            rows = conn.execute(
                f"SELECT {self._COLUMNS} FROM books {where} ORDER BY id LIMIT ? OFFSET ?",
                params + (min(limit, total) if limit else -1, offset),
            ).fetchall()
        return total, [self._row_to_book(row) for row in rows]

    def get(self, book_id: int) -> Book:
        with self._connection() as conn:
            return self._fetch(conn, book_id)

    def insert(self, book: Book) -> Book:
        new_book = book.copy()
        with self._connection() as conn:
            # Read-then-insert: a concurrent writer that takes the same id
            # trips the UNIQUE constraint and surfaces as ConflictError.
            if new_book.id is None:
                new_book.id = self._next_id(conn)
            new_book.created_at = new_book.updated_at = utc_now()
            try:
                conn.execute(
                    f"INSERT INTO books ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (new_book.id, new_book.title, new_book.author, 1 if new_book.available else 0,
                     new_book.borrower, new_book.borrowed_at, new_book.created_at, new_book.updated_at),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        logger.info(f"Book {new_book.id} created")
        return new_book

    def modify(self, book_id: int, apply: Callable[[Book], Book]) -> Book:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._fetch(conn, book_id)
                updated = self._stamp_update(current, apply(current.copy()))
                conn.execute(
                    "UPDATE books SET title = ?, author = ?, available = ?, borrower = ?, "
                    "borrowed_at = ?, updated_at = ? WHERE id = ?",
                    (updated.title, updated.author, 1 if updated.available else 0,
                     updated.borrower, updated.borrowed_at, updated.updated_at, book_id),
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return updated

    def remove(self, book_id: int) -> None:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise BookNotFoundError(book_id)
        logger.info(f"Book {book_id} deleted")

    def count(self) -> int:
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    @staticmethod
    def _next_id(conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COALESCE(MAX(id), 0) + 1 FROM books").fetchone()[0]


def create_store(config: Settings) -> BookStore:
    """Build the store selected by ``config.storage_backend``."""
    backend = (config.storage_backend or "").lower()
    if backend == "json":
        return JsonFileBookStore(config.data_file)
    if backend == "sqlite":
        return SqliteBookStore(config.database_file)
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r} (use 'json' or 'sqlite')")
