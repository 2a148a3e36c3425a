"""Pytest configuration and fixtures for unit tests."""

import pytest

from taskmirror.core.auth import AuthContext
from tests.unit.mocks import USER, InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches taskmirror.core.db_client functions to use InMemoryDBClient."""
    for name in (
        "create_record",
        "get_record",
        "update_record",
        "delete_record",
        "list_all_records",
        "get_first_record",
        "delete_records",
        "subscribe",
    ):
        monkeypatch.setattr(f"taskmirror.core.db_client.{name}", getattr(in_memory_db, name))

    return in_memory_db


@pytest.fixture
def auth():
    """Auth context with Alice signed in."""
    return AuthContext(user=dict(USER))


@pytest.fixture
def signed_out_auth():
    return AuthContext()


@pytest.fixture
async def seed(patched_db):
    """Insert a row straight into the in-memory database."""

    async def _seed(collection: str, **data):
        return await patched_db.create_record(collection=collection, data=data)

    return _seed
