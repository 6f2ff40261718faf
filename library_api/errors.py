"""Domain errors raised by the stores and the library service.

Each error carries the HTTP status code the API answers with.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(LibraryError):
    status_code = 400


class BookNotFoundError(LibraryError):
    status_code = 404

    def __init__(self, book_id: int) -> None:
        super().__init__("Book not found")
        self.book_id = book_id


class AlreadyBorrowedError(LibraryError):
    status_code = 400

    def __init__(self, book_id: int) -> None:
        super().__init__("Book is already borrowed")
        self.book_id = book_id


class NotBorrowedError(LibraryError):
    status_code = 400

    def __init__(self, book_id: int) -> None:
        super().__init__("Book is not currently borrowed")
        self.book_id = book_id


class ConflictError(LibraryError):
    status_code = 409


class StorageError(LibraryError):
    status_code = 500
