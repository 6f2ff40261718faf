from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from library_api.main import app

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "json")
    monkeypatch.setenv("LIBRARY_DATA_FILE", str(tmp_path / "books.json"))
    monkeypatch.setenv("SEED_SAMPLE_DATA", "false")
    return tmp_path


def test_list_no_books(cli_env):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_list_seeded_books(cli_env, monkeypatch):
    monkeypatch.setenv("SEED_SAMPLE_DATA", "true")
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "Gatsby" in result.stdout
    assert "Orwell" in result.stdout
    assert "borrowed by Alice" in result.stdout

    result = runner.invoke(app, ["list", "--query", "lee"])
    assert "Mockingbird" in result.stdout
    assert "Gatsby" not in result.stdout


def test_add_and_show(cli_env):
    result = runner.invoke(app, ["add", "Dune", "Herbert"])
    assert result.exit_code == 0
    assert "Successfully added #1: Dune by Herbert" in result.stdout

    result = runner.invoke(app, ["show", "1"])
    assert result.exit_code == 0
    assert "Title: Dune" in result.stdout
    assert "Author: Herbert" in result.stdout
    assert "Status: available" in result.stdout


def test_add_invalid(cli_env):
    result = runner.invoke(app, ["add", "   ", "Herbert"])
    assert result.exit_code == 1
    assert "Error: title must not be empty" in result.stdout


def test_borrow_and_return(cli_env):
    runner.invoke(app, ["add", "Dune", "Herbert"])

    result = runner.invoke(app, ["borrow", "1", "Alice"])
    assert result.exit_code == 0
    assert "Book #1 borrowed by Alice." in result.stdout

    result = runner.invoke(app, ["borrow", "1", "Bob"])
    assert result.exit_code == 1
    assert "Error: Book is already borrowed" in result.stdout

    result = runner.invoke(app, ["return", "1"])
    assert result.exit_code == 0
    assert "Book #1 has been returned." in result.stdout

    result = runner.invoke(app, ["return", "1"])
    assert result.exit_code == 1
    assert "not currently borrowed" in result.stdout


def test_remove(cli_env):
    runner.invoke(app, ["add", "Dune", "Herbert"])
    result = runner.invoke(app, ["remove", "1"])
    assert result.exit_code == 0
    assert "Book #1 has been removed." in result.stdout

    result = runner.invoke(app, ["show", "1"])
    assert result.exit_code == 1
    assert "Error: Book not found" in result.stdout


def test_show_invalid_id(cli_env):
    result = runner.invoke(app, ["show", "abc"])
    assert result.exit_code == 1
    assert "must be numeric" in result.stdout


def test_migrate_json_to_sqlite(cli_env, monkeypatch):
    monkeypatch.setenv("LIBRARY_DB_FILE", str(cli_env / "library.db"))
    runner.invoke(app, ["add", "Dune", "Herbert"])
    runner.invoke(app, ["add", "Emma", "Austen"])
    runner.invoke(app, ["borrow", "2", "Alice"])

    result = runner.invoke(app, ["migrate"])
    assert result.exit_code == 0
    assert "Migrated 2 books" in result.stdout

    monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
    result = runner.invoke(app, ["show", "2"])
    assert result.exit_code == 0
    assert "Status: borrowed by Alice" in result.stdout

    result = runner.invoke(app, ["migrate"])
    assert result.exit_code == 0
    assert "Migrated 0 books" in result.stdout


def test_migrate_explicit_paths(cli_env):
    source = cli_env / "export.json"
    source.write_text('[{"id": 7, "title": "Dune", "author": "Herbert"}]', encoding="utf-8")
    target = cli_env / "other.db"
    result = runner.invoke(app, ["migrate", "--source", str(source), "--target", str(target)])
    assert result.exit_code == 0
    assert "Migrated 1 books" in result.stdout
    assert target.exists()


def test_migrate_rejects_non_list_file(cli_env, monkeypatch):
    monkeypatch.setenv("LIBRARY_DB_FILE", str(cli_env / "library.db"))
    (cli_env / "books.json").write_text('{"books": []}', encoding="utf-8")
    result = runner.invoke(app, ["migrate"])
    assert result.exit_code == 1
    assert "must contain a JSON array" in result.stdout


@patch("subprocess.run")
def test_serve_command(mock_subprocess_run, cli_env, monkeypatch):
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "8123")
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0
    assert "Starting API on http://127.0.0.1:8123/api/v1/books" in result.stdout
    mock_subprocess_run.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "library_api.api:app" in args
    assert args[args.index("--port") + 1] == "8123"
