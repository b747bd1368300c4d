"""Shared pytest fixtures for nestedset tests."""

import pytest

from nestedset.db.connection import Database
from nestedset.manager import NestedSetManager
from nestedset.storage.sqlite import SQLiteTreeStorage


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def storage(db):
    """SQLiteTreeStorage backed by the in-memory database."""
    return SQLiteTreeStorage(db)


@pytest.fixture
async def manager(storage):
    """A fresh manager (and registry) per test."""
    return NestedSetManager(storage)
