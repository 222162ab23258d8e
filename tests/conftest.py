"""Shared test fixtures."""

from __future__ import annotations

import pytest

from pdvsync.adapters.db.facade import DB
from tests.fixtures.online_orders import FakeClock, FakeMonotonic


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def db() -> DB:
    """In-memory database with the schema created."""
    database = DB("sqlite:///:memory:")
    database.create_schema()
    return database
