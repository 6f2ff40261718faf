import pytest
from fastapi.testclient import TestClient

from library_api.api import create_app
from library_api.config import Settings
from library_api.library import Library
from library_api.stores import JsonFileBookStore, SqliteBookStore


@pytest.fixture(params=["json", "sqlite"])
def store(tmp_path, request):
    # Each test runs against both backends with its own data file
    if request.param == "json":
        return JsonFileBookStore(tmp_path / "books.json")
    return SqliteBookStore(tmp_path / "library.db")


@pytest.fixture
def lib(store):
    return Library(store)


@pytest.fixture
def seeded_lib(lib):
    lib.seed_sample_books()
    return lib


@pytest.fixture
def make_client(tmp_path):
    def _make(api_key=None, backend="json", seed=True):
        config = Settings(
            api_key=api_key,
            storage_backend=backend,
            data_file=str(tmp_path / "books.json"),
            database_file=str(tmp_path / "library.db"),
            seed_sample_data=seed,
        )
        library = Library.from_settings(config)
        return TestClient(create_app(config, library))
    return _make


@pytest.fixture
def client(make_client):
    return make_client()
