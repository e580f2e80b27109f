"""
Root pytest configuration for IPO Digest tests

Adds project root to Python path and provides common fixtures
"""
import sys
import os

import pytest
from dotenv import load_dotenv

# Add project root to Python path so tests can import ipo_digest
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Load environment variables
load_dotenv()


@pytest.fixture(scope="function", autouse=True)
def isolate_database(monkeypatch):
    """
    Keep tests off any real database.

    History and delivery tracking stay disabled unless a test asks for the
    db fixture.
    """
    from ipo_digest import database

    monkeypatch.delenv('DATABASE_URL', raising=False)
    database.reset()
    yield
    database.reset()


@pytest.fixture(scope="function")
def db():
    """
    Provides a fresh in-memory SQLite database for tests.

    Tables are created directly from the models.
    """
    from ipo_digest import database

    engine = database.configure('sqlite://')
    database.init_db()
    yield engine
    database.reset()


@pytest.fixture(scope="function")
def db_session(db):
    """Provides a database session bound to the test database."""
    from ipo_digest.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
