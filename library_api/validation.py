import re
from typing import Any, Dict, Optional, Tuple

from library_api.errors import BookNotFoundError, InvalidInputError

_NUMERIC_ID = re.compile(r"^\d+$")

# Largest id either backend can hold (SQLite INTEGER is a signed 64-bit value)
MAX_BOOK_ID = 2**63 - 1

# Only these fields may reach storage through create/update/patch
MUTABLE_FIELDS = ("title", "author")


class BookValidator:
    """Presence and type checks for book payloads, path ids and paging."""

    @staticmethod
    def parse_book_id(raw: Any) -> int:
        """Parse a path id. Well-formed ids too large to store cannot exist."""
        if isinstance(raw, bool):
            raise InvalidInputError("Invalid book id (must be numeric)")
        if isinstance(raw, int):
            if raw < 0:
                raise InvalidInputError("Invalid book id (must be numeric)")
            book_id = raw
        elif raw is None or not _NUMERIC_ID.match(str(raw)):
            raise InvalidInputError("Invalid book id (must be numeric)")
        else:
            book_id = int(raw)
        if book_id > MAX_BOOK_ID:
            raise BookNotFoundError(book_id)
        return book_id

    @staticmethod
    def require_text(value: Any, field_name: str) -> str:
        if value is None:
            raise InvalidInputError(f"{field_name} is required")
        if not isinstance(value, str):
            raise InvalidInputError(f"{field_name} must be a string")
        cleaned = value.strip()
        if not cleaned:
            raise InvalidInputError(f"{field_name} must not be empty")
        return cleaned

    @staticmethod
    def validate_create(title: Any, author: Any, available: Any = None) -> Tuple[str, str]:
        if title is None or author is None:
            raise InvalidInputError("Title and author are required")
        clean_title = BookValidator.require_text(title, "title")
        clean_author = BookValidator.require_text(author, "author")
        if available is not None:
            if not isinstance(available, bool):
                raise InvalidInputError("available must be a boolean")
            if available is False:
                # A borrowed book needs a borrower; only the borrow operation sets one
                raise InvalidInputError("New books must be available; use the borrow operation instead")
        return clean_title, clean_author

    @staticmethod
    def validate_update(fields: Dict[str, Any]) -> Dict[str, str]:
        """Return the allow-listed, cleaned subset of ``fields``.

        ``available`` is type-checked when present and then dropped, as are
        borrower fields and anything unknown. The result may be empty.
        """
        available = fields.get("available")
        if available is not None and not isinstance(available, bool):
            raise InvalidInputError("available must be a boolean")

        updates: Dict[str, str] = {}
        for name in MUTABLE_FIELDS:
            value = fields.get(name)
            if value is not None:
                updates[name] = BookValidator.require_text(value, name)
        return updates

    @staticmethod
    def validate_borrower(borrower: Any) -> str:
        if borrower is None or (isinstance(borrower, str) and not borrower.strip()):
            raise InvalidInputError("Borrower name is required")
        return BookValidator.require_text(borrower, "borrower")

    @staticmethod
    def clamp_paging(page: Optional[int], limit: Optional[int], default_limit: int, max_limit: int) -> Tuple[int, int]:
        page = max(1, page if page is not None else 1)
        limit = default_limit if limit is None else limit
        limit = min(max_limit, max(1, limit))
        return page, limit
