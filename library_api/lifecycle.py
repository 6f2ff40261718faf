"""Borrow/return state transitions.

A book is either available or borrowed. Both transitions check their
preconditions before touching the record and return a new ``Book``; the
input is never modified.
"""
from __future__ import annotations

from library_api.book import Book, utc_now
from library_api.errors import AlreadyBorrowedError, InvalidInputError, NotBorrowedError


def borrow(book: Book, borrower: str, now: str | None = None) -> Book:
    if not book.available:
        raise AlreadyBorrowedError(book.id)
    if not borrower or not borrower.strip():
        raise InvalidInputError("Borrower name is required")

    borrowed = book.copy()
    borrowed.available = False
    borrowed.borrower = borrower.strip()
    borrowed.borrowed_at = now or utc_now()
    return borrowed


def return_book(book: Book) -> Book:
    if book.available:
        raise NotBorrowedError(book.id)

    returned = book.copy()
    returned.available = True
    returned.borrower = None
    returned.borrowed_at = None
    return returned
