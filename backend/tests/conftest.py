import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from splitledger.database import Base, get_db
from splitledger.main import app

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


def register(client, email, name):
    res = client.post("/api/auth/register", json={
        "email": email, "password": "testpass123", "name": name
    })
    data = res.json()
    return data["user"], {"Authorization": f"Bearer {data['access_token']}"}


@pytest.fixture
def auth_headers(client):
    _, headers = register(client, "test@example.com", "Test User")
    return headers


@pytest.fixture
def user_id(client, auth_headers):
    return client.get("/api/auth/me", headers=auth_headers).json()["id"]


@pytest.fixture
def second_user(client):
    user, headers = register(client, "user2@example.com", "User Two")
    return {**user, "headers": headers}


@pytest.fixture
def third_user(client):
    user, headers = register(client, "user3@example.com", "User Three")
    return {**user, "headers": headers}


@pytest.fixture
def group_id(client, auth_headers):
    res = client.post("/api/groups", json={"name": "Test Group", "currency": "usd"}, headers=auth_headers)
    return res.json()["id"]


@pytest.fixture
def trio(client, auth_headers, user_id, second_user, third_user, group_id):
    """Group of three: (group_id, creator id, second id, third id)."""
    for email in ("user2@example.com", "user3@example.com"):
        client.post(f"/api/groups/{group_id}/members", json={"email": email}, headers=auth_headers)
    return group_id, user_id, second_user["id"], third_user["id"]
