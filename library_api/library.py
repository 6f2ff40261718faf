import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from library_api import lifecycle
from library_api.book import Book
from library_api.config import Settings, settings
from library_api.stores import BookStore, create_store
from library_api.validation import BookValidator

logger = logging.getLogger(__name__)

SAMPLE_BOOKS: List[Dict[str, Any]] = [
    {"id": 1, "title": "The Great Gatsby", "author": "F. Scott Fitzgerald"},
    {"id": 2, "title": "1984", "author": "George Orwell", "borrower": "Alice"},
    {"id": 3, "title": "To Kill a Mockingbird", "author": "Harper Lee"},
]


@dataclass
class BookPage:
    total: int
    page: int
    limit: int
    books: List[Book]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "data": [b.to_dict() for b in self.books],
        }


class Library:
    """Book records and their borrow/return status, on top of a BookStore."""

    def __init__(self, store: BookStore, default_page_size: int = 50, max_page_size: int = 100) -> None:
        self.store = store
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "Library":
        """Build the configured store and seed it if it is empty."""
        config = config or settings
        library = cls(
            create_store(config),
            default_page_size=config.default_page_size,
            max_page_size=config.max_page_size,
        )
        if config.seed_sample_data:
            library.seed_sample_books()
        return library

    # ------------------------- Core operations ------------------------- #
    def list_books(self, query: Optional[str] = None, page: Optional[int] = None,
                   limit: Optional[int] = None) -> BookPage:
        """List books, optionally filtered by a title/author substring."""
        page, limit = BookValidator.clamp_paging(page, limit, self.default_page_size, self.max_page_size)
        query = query.strip() if query else None
        total, books = self.store.list_all(query=query or None, page=page, limit=limit)
        return BookPage(total=total, page=page, limit=limit, books=books)

    def find_book(self, book_id: Any) -> Book:
        return self.store.get(BookValidator.parse_book_id(book_id))

    def add_book(self, title: Any, author: Any, available: Any = None) -> Book:
        title, author = BookValidator.validate_create(title, author, available)
        return self.store.insert(Book(title=title, author=author))

    def update_book(self, book_id: Any, fields: Dict[str, Any]) -> Book:
        """Full update of title and/or author. Nothing to change returns the record as is."""
        book_id = BookValidator.parse_book_id(book_id)
        updates = BookValidator.validate_update(fields)
        return self.store.replace(book_id, updates)

    def patch_book(self, book_id: Any, fields: Dict[str, Any]) -> Book:
        book_id = BookValidator.parse_book_id(book_id)
        updates = BookValidator.validate_update(fields)
        return self.store.patch(book_id, updates)

    def remove_book(self, book_id: Any) -> int:
        book_id = BookValidator.parse_book_id(book_id)
        self.store.remove(book_id)
        return book_id

    # ------------------------- Lending ------------------------- #
    def borrow_book(self, book_id: Any, borrower: Any) -> Book:
        book_id = BookValidator.parse_book_id(book_id)
        borrower = BookValidator.validate_borrower(borrower)
        book = self.store.modify(book_id, lambda current: lifecycle.borrow(current, borrower))
        logger.info(f"Book {book_id} borrowed")
        return book

    def return_book(self, book_id: Any) -> Book:
        book_id = BookValidator.parse_book_id(book_id)
        book = self.store.modify(book_id, lifecycle.return_book)
        logger.info(f"Book {book_id} returned")
        return book

    # ------------------------- Utilities ------------------------- #
    def seed_sample_books(self) -> int:
        """Insert the sample books into an empty store. Returns how many were added."""
        if self.store.count() > 0:
            return 0
        for item in SAMPLE_BOOKS:
            book = Book(id=item["id"], title=item["title"], author=item["author"])
            if item.get("borrower"):
                book = lifecycle.borrow(book, item["borrower"])
            self.store.insert(book)
        logger.info(f"Seeded {len(SAMPLE_BOOKS)} sample books")
        return len(SAMPLE_BOOKS)

    def total_books(self) -> int:
        return self.store.count()
