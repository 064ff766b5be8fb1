import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app


@pytest.fixture
def db():
    return mongomock.MongoClient().get_database("petmarket_test")


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def signup(client):
    def _signup(email="a@b.com", password="longenough", name="A"):
        response = client.post("/api/auth/signup", json={"email": email, "password": password, "name": name})
        assert response.status_code == 201
        return response.json()["userId"]
    return _signup
