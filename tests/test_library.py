import pytest

from library_api.config import Settings
from library_api.errors import (
    AlreadyBorrowedError,
    BookNotFoundError,
    InvalidInputError,
    NotBorrowedError,
)
from library_api.library import Library


def test_add_list_and_find(lib):
    assert lib.list_books().books == []

    book = lib.add_book("Ulysses", "James Joyce")
    assert book.available is True
    assert book.borrower is None and book.borrowed_at is None

    assert lib.find_book(book.id).title == "Ulysses"
    assert lib.find_book(str(book.id)) == book
    assert lib.list_books().total == 1


def test_add_book_rejects_missing_fields(lib):
    with pytest.raises(InvalidInputError):
        lib.add_book("Ulysses", None)
    with pytest.raises(InvalidInputError):
        lib.add_book("", "James Joyce")
    assert lib.total_books() == 0


def test_find_book_invalid_id(lib):
    with pytest.raises(InvalidInputError):
        lib.find_book("abc")


def test_find_book_not_found(lib):
    with pytest.raises(BookNotFoundError):
        lib.find_book(42)


def test_update_book(lib):
    book = lib.add_book("Old Title", "Old Author")
    updated = lib.update_book(book.id, {"title": "New Title", "author": "New Author"})
    assert (updated.title, updated.author) == ("New Title", "New Author")
    assert lib.find_book(book.id).title == "New Title"


def test_update_book_ignores_availability_fields(lib):
    book = lib.add_book("Dune", "Herbert")
    updated = lib.update_book(book.id, {"title": "Dune", "available": False, "borrower": "Eve"})
    assert updated.available is True
    assert updated.borrower is None


def test_update_book_without_changes_returns_record(lib):
    book = lib.add_book("Dune", "Herbert")
    for fields in ({}, {"borrower": "Eve"}, {"available": False}):
        assert lib.update_book(book.id, fields) == book
    assert lib.find_book(book.id) == book


def test_update_book_not_found(lib):
    with pytest.raises(BookNotFoundError):
        lib.update_book(99, {"title": "New Title"})


def test_patch_book_partial(lib):
    book = lib.add_book("Original Title", "Original Author")
    updated = lib.patch_book(book.id, {"title": "Only Title Changed"})
    assert updated.author == "Original Author"
    assert lib.patch_book(book.id, {}).title == "Only Title Changed"


def test_remove_book(lib):
    book = lib.add_book("Test", "Author")
    assert lib.remove_book(str(book.id)) == book.id
    with pytest.raises(BookNotFoundError):
        lib.find_book(book.id)
    with pytest.raises(BookNotFoundError):
        lib.remove_book(book.id)


def test_borrow_and_return_round_trip(lib):
    book = lib.add_book("Dune", "Herbert")

    borrowed = lib.borrow_book(book.id, "Alice")
    assert borrowed.available is False
    assert borrowed.borrower == "Alice"
    assert borrowed.borrowed_at

    returned = lib.return_book(book.id)
    assert returned.available is True
    assert returned.borrower is None
    assert returned.borrowed_at is None
    assert lib.find_book(book.id) == returned


def test_borrow_already_borrowed_leaves_record(seeded_lib):
    before = seeded_lib.find_book(2)
    with pytest.raises(AlreadyBorrowedError):
        seeded_lib.borrow_book(2, "Bob")
    assert seeded_lib.find_book(2) == before


def test_return_available_book_leaves_record(seeded_lib):
    before = seeded_lib.find_book(1)
    with pytest.raises(NotBorrowedError):
        seeded_lib.return_book(1)
    assert seeded_lib.find_book(1) == before


def test_borrow_checks_borrower_before_existence(lib):
    with pytest.raises(InvalidInputError):
        lib.borrow_book(99, "")
    with pytest.raises(BookNotFoundError):
        lib.borrow_book(99, "Alice")


def test_seed_sample_books_only_once(lib):
    assert lib.seed_sample_books() == 3
    assert lib.seed_sample_books() == 0

    orwell = lib.find_book(2)
    assert orwell.title == "1984"
    assert orwell.available is False
    assert orwell.borrower == "Alice"
    assert orwell.borrowed_at
    assert lib.find_book(1).available is True
    assert lib.add_book("Dune", "Herbert").id == 4


def test_list_books_search_and_paging(seeded_lib):
    page = seeded_lib.list_books(query=" orwell ")
    assert page.total == 1
    assert page.books[0].id == 2

    page = seeded_lib.list_books(page=0, limit=1000)
    assert (page.page, page.limit, page.total) == (1, 100, 3)

    page = seeded_lib.list_books(page=2, limit=2)
    assert [b.id for b in page.books] == [3]
    assert page.to_dict()["data"][0]["title"] == "To Kill a Mockingbird"


def test_list_books_limit_is_capped(store):
    lib = Library(store, default_page_size=2, max_page_size=3)
    for i in range(5):
        lib.add_book(f"Book {i}", "Someone")

    page = lib.list_books()
    assert (page.limit, len(page.books)) == (2, 2)

    page = lib.list_books(limit=50)
    assert (page.limit, len(page.books), page.total) == (3, 3, 5)


def test_list_books_page_far_past_the_end(seeded_lib):
    page = seeded_lib.list_books(page=10**20)
    assert (page.page, page.total, page.books) == (10**20, 3, [])


def test_from_settings_uses_configured_page_sizes(tmp_path):
    config = Settings(
        storage_backend="sqlite",
        database_file=str(tmp_path / "library.db"),
        seed_sample_data=True,
        default_page_size=1,
        max_page_size=2,
    )
    library = Library.from_settings(config)
    assert library.list_books().limit == 1
    assert library.list_books(limit=10).limit == 2


def test_from_settings_seeds_configured_store(tmp_path):
    config = Settings(storage_backend="json", data_file=str(tmp_path / "books.json"), seed_sample_data=True)
    library = Library.from_settings(config)
    assert library.total_books() == 3
    assert (tmp_path / "books.json").exists()

    config.seed_sample_data = False
    config.data_file = str(tmp_path / "empty.json")
    assert Library.from_settings(config).total_books() == 0
