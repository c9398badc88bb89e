import pytest
from fastapi.testclient import TestClient

from config import Settings
from db_setup import Database
from main import create_app
from reconciliation import IdentityResolver


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "contacts.db"))
    db.init_db()
    return db


@pytest.fixture
def resolver(database):
    return IdentityResolver(database)


@pytest.fixture
def client(tmp_path):
    settings = Settings(database_path=str(tmp_path / "api.db"))
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def seed(database):
    """Insert a raw contact row, bypassing the engine. Returns the new id."""

    def _seed(email=None, phone=None, linked_id=None, precedence="primary",
              created_at="2023-04-01T00:00:00.000000+00:00", deleted_at=None):
        with database.transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt, deletedAt)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (phone, email, linked_id, precedence, created_at, created_at, deleted_at))
            return cursor.lastrowid

    return _seed


@pytest.fixture
def rows(database):
    """Every row in the table, keyed by id."""

    def _rows():
        with database.transaction() as conn:
            return {row["id"]: dict(row) for row in conn.execute("SELECT * FROM Contact")}

    return _rows


@pytest.fixture
def assert_invariants(rows):
    def _check():
        contacts = rows()
        for contact in contacts.values():
            if contact["linkPrecedence"] == "primary":
                assert contact["linkedId"] is None
            else:
                parent = contacts[contact["linkedId"]]
                assert parent["linkPrecedence"] == "primary", contact

    return _check
