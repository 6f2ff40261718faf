from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with a trailing 'Z'."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Book:
    """Represents a single book record in the library."""

    def __init__(self, title: str, author: str, id: int | None = None, available: bool = True,
                 borrower: str | None = None, borrowed_at: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.available = bool(available)
        self.borrower = borrower
        self.borrowed_at = borrowed_at
        self.created_at = created_at
        self.updated_at = updated_at
        # An available book never carries a borrower
        if self.available:
            self.borrower = None
            self.borrowed_at = None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.title} by {self.author}"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r}, available={self.available!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def copy(self) -> "Book":
        return Book.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "available": self.available,
            "borrower": self.borrower,
            "borrowedAt": self.borrowed_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            available=data.get("available", True),
            borrower=data.get("borrower"),
            borrowed_at=data.get("borrowedAt"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
