import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import MemoryStore
from main import create_app


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def app(store):
    return create_app(store=store, settings=Settings())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def driver_id(store) -> str:
    return store.insert_one("users", {
        "name": "John Driver",
        "email": "john@example.com",
        "password": "abc123",
        "role": "driver",
        "available": True,
    })
