"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from src.config import Settings, get_settings
from src.database import Base, get_db, make_engine
from src.main import app
from src.models.scanned_url import ScannedURL
from src.models.user import User
from src.services.auth import get_or_create_user, issue_device_token

FIXTURES_DIR = Path(__file__).parent / "fixtures"

WEBHOOK_SECRET = "test-webhook-secret"  # noqa: S105


class AuthHeaders(dict):
    """Dict subclass that also stores user_id and email."""

    def __init__(self, *args, user_id: int | None = None, email: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace("/receipts", "/receipts_test")
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def load_fixture(name: str) -> str:
    """Read an HTML fixture file."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def test_settings():
    """Settings with a webhook secret and the test database."""
    return Settings(
        database_url=SQLALCHEMY_DATABASE_URL,
        webhook_secret=WEBHOOK_SECRET,
        environment="test",
    )


@pytest.fixture(scope="function")
def client(db, test_settings):
    """Create a test client with database and settings overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(db, test_settings):
    """Create a user and return headers carrying its device token."""
    user = get_or_create_user(db, "test@example.com", "Test User")
    token = issue_device_token(user, test_settings)
    return AuthHeaders({"Authorization": f"Bearer {token}"}, user_id=user.id, email=user.email)


@pytest.fixture
def user(db) -> User:
    """A user created directly in the database."""
    return get_or_create_user(db, "scanner@example.com", "Scanner")


@pytest.fixture
def make_scanned_url(db, user):
    """Factory for stored scanned URLs owned by the user fixture."""

    def _make(url: str, html_snapshot: str | None = None, owner: User | None = None) -> ScannedURL:
        scanned_url = ScannedURL(
            url=url, user_id=(owner or user).id, html_snapshot=html_snapshot
        )
        db.add(scanned_url)
        db.commit()
        db.refresh(scanned_url)
        return scanned_url

    return _make


def insert_event(scanned_url: ScannedURL, **record_overrides) -> dict:
    """Build the INSERT event for a stored scanned URL."""
    record = {
        "id": scanned_url.id,
        "url": scanned_url.url,
        "userId": scanned_url.user_id,
        "createdAt": scanned_url.created_at.isoformat(),
    }
    record.update(record_overrides)
    return {"type": "INSERT", "table": "scanned_urls", "record": record}
