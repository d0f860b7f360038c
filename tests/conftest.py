import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="filyo-tests-"))
DB_PATH = _TMP / "test.db"

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

from filyo.core.config import settings
from filyo.main import app

sync_engine = create_engine(f"sqlite:///{DB_PATH}")

ADMIN = {"email": "admin@example.com", "name": "Admin", "password": "adminpass1"}
USER = {"email": "user@example.com", "name": "User", "password": "userpass12"}


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    # every test starts from empty tables and an empty upload dir
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    SQLModel.metadata.drop_all(sync_engine)
    SQLModel.metadata.create_all(sync_engine)
    yield


@pytest.fixture
def upload_dir() -> Path:
    return Path(settings.upload_dir)


@pytest.fixture
def db():
    with Session(sync_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def login(client, email, password) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    resp = client.post("/api/v1/auth/register", json=ADMIN)
    assert resp.status_code == 201, resp.text
    return login(client, ADMIN["email"], ADMIN["password"])


@pytest.fixture
def user_headers(client, admin_headers):
    resp = client.post("/api/v1/users/", json=USER, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return login(client, USER["email"], USER["password"])
