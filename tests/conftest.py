import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
from database import get_db
from main import app
from helpers import auth_headers, register


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """Keep password hashing cheap in tests"""
    monkeypatch.setattr(auth, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(client):
    token = register(client)["token"]
    return auth_headers(token)


@pytest.fixture
def other_headers(client):
    token = register(client, email="bob@example.com", name="Bob")["token"]
    return auth_headers(token)
