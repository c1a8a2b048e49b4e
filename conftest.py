import pytest

import database
from accounts import Accounts
from library import Library


@pytest.fixture
def db_file(tmp_path, request, monkeypatch):
    # Every test gets its own database file
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setattr(database, "DATABASE_FILE", path)
    assert database.initialize_database()
    return path


@pytest.fixture
def lib(db_file):
    return Library()


@pytest.fixture
def accounts(db_file):
    return Accounts()


@pytest.fixture
def alice(accounts):
    return accounts.register("alice@x.com", "pw1", "Alice")


@pytest.fixture
def bob(accounts):
    return accounts.register("bob@x.com", "pw2", "Bob")


@pytest.fixture
def dune(lib):
    return lib.add_book("Dune", "Herbert", "111")
