"""
Test configuration and fixtures for the shortlink service.
This centralizes all test setup, making individual tests clean.
"""

import os

# Must be set before the app (and its settings) are imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("QUEUE_BACKEND", "memory")
os.environ.setdefault("ACCESS_LOG_BACKEND", "database")
os.environ.setdefault("EMBEDDED_WORKER", "false")

import pytest
from fastapi.testclient import TestClient

from main import app
from shortlink_app.database.connection import Base, SessionLocal, engine, get_db
from shortlink_app.dependencies import get_access_log_storage, get_access_recorder, get_link_service
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.services.access_recorder import AccessRecorder
from shortlink_app.services.link_service import LinkService
from shortlink_app.storage.strategies import DatabaseAccessLogStorage

TEST_QUEUE = "test_access"
OWNER = "owner-1"
OTHER_OWNER = "owner-2"
# Low bcrypt work factor keeps password tests fast; production uses settings.bcrypt_rounds
TEST_BCRYPT_ROUNDS = 4


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    This ensures tests are isolated and don't affect each other.
    """
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def queue():
    return InMemoryQueue()


@pytest.fixture
def recorder(queue):
    return AccessRecorder(queue=queue, queue_name=TEST_QUEUE)


@pytest.fixture
def access_storage(db_session):
    return DatabaseAccessLogStorage(session_factory=SessionLocal)


@pytest.fixture
def link_service(db_session):
    return LinkService(db_session, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(scope="function")
def client(db_session, recorder, access_storage):
    """
    Create a test client with database, recorder and storage overridden.
    This is the main fixture that tests will use.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_access_recorder] = lambda: recorder
    app.dependency_overrides[get_access_log_storage] = lambda: access_storage
    app.dependency_overrides[get_link_service] = lambda: LinkService(db_session, bcrypt_rounds=TEST_BCRYPT_ROUNDS)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
