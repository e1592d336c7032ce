"""Pytest configuration and fixtures for unit tests."""

import pytest

from src.core import db_client
from src.core.config import settings
from src.interface.live_channel import connection_registry
from src.services import notification_service
from tests.unit.helpers import Crew, seed_crew


@pytest.fixture
async def db(tmp_path, monkeypatch):
    """Fresh SQLite database per test, closed on teardown."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "toma5.db"))
    monkeypatch.setattr(settings, "session_secret_key", "test-secret-key")
    await db_client.init_db()
    yield
    await notification_service.flush()
    connection_registry.clear()
    await db_client.close_connection()


@pytest.fixture
async def crew(db) -> Crew:
    """Two supervisors, two active workers, one inactive worker and an administrator."""
    return await seed_crew()
