"""
Codemmunity Backend: Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test that touches the database gets its own SQLite file under
       tmp_path (via aiosqlite), with the schema created and three accounts
       inserted. Nothing talks to a MySQL server.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── db:             connected ConnectionManager on a fresh SQLite file
    ├── clock:          deterministic clock, one second per call
    ├── post_repo:      PostRepository(db, clock)
    ├── comment_repo:   CommentRepository(db, clock)
    ├── app:            FastAPI app with app.state.db = db (no lifespan)
    └── test_client:    HTTPX AsyncClient for API endpoint testing
"""

import os
from datetime import datetime, timedelta, timezone

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["USE_SSL"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from codemmunity.config import DatabaseConfig, Settings
from codemmunity.database import ConnectionManager
from codemmunity.models import UserRow
from codemmunity.repositories import CommentRepository, PostRepository

AUTHOR = "u1"
COMMENTER = "u2"
MODERATOR = "mod"


class FakeClock:
    """Returns strictly increasing UTC timestamps, one second apart."""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


def sqlite_config(path, **overrides) -> DatabaseConfig:
    return DatabaseConfig(url_override=f"sqlite+aiosqlite:///{path}", **overrides)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db(tmp_path):
    """
    A connected ConnectionManager backed by a private SQLite file.

    Users: u1 (Ada), u2 (Linus), mod (Grace, acts as moderator in API tests).
    """
    manager = ConnectionManager(sqlite_config(tmp_path / "codemmunity.db"))
    await manager.connect()
    await manager.create_schema()
    async with manager.transaction() as session:
        session.add_all(
            [
                UserRow(id=AUTHOR, name="Ada"),
                UserRow(id=COMMENTER, name="Linus"),
                UserRow(id=MODERATOR, name="Grace"),
            ]
        )
    yield manager
    await manager.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def post_repo(db, clock):
    return PostRepository(db, clock=clock)


@pytest.fixture
def comment_repo(db, clock):
    return CommentRepository(db, clock=clock)


@pytest.fixture
def app(db):
    """
    The application wired to the test database.

    ASGITransport does not run the lifespan, so the ConnectionManager is
    attached to app.state directly.
    """
    from codemmunity.main import create_app

    application = create_app(Settings(_env_file=None))
    application.state.db = db
    return application


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
