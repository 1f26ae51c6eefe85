"""
Pytest configuration and fixtures.
"""
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from app.api.deps import get_current_user_id
from app.db import mongo
from app.db.indexes import create_indexes
from app.main import app

TEST_USER_ID = "user-1"


@pytest.fixture
async def db():
    """In-memory Motor database with the production indexes."""
    database = AsyncMongoMockClient()["meetstats_test"]
    mongo.use_database(database)
    await create_indexes()
    yield database
    mongo.use_database(None)


@pytest.fixture
def client(db):
    """Test client authenticated as TEST_USER_ID."""
    app.dependency_overrides[get_current_user_id] = lambda: TEST_USER_ID
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(db):
    return TestClient(app)
