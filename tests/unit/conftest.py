"""Pytest unit test fixtures."""

import pytest

from cartpilot.memory.store import SQLiteTurnLogStore


@pytest.fixture()
def sqlite_store(tmp_path):
    db_path = tmp_path / "turns.db"
    return SQLiteTurnLogStore(db_path)
