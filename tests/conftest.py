"""
Pytest configuration and fixtures for BM Jaya Printing Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
TEST_SECRET_KEY = "test-secret-key-12345"
os.environ["BMJAYA_SECRET_KEY"] = TEST_SECRET_KEY
os.environ["BMJAYA_DB_PATH"] = str(Path(tempfile.mkdtemp(prefix="bmjaya_test_db_")) / "app.db")
os.environ["BMJAYA_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="bmjaya_test_uploads_")
os.environ["BMJAYA_PAGE_SIZE"] = "10"

from bmjaya_backend.database import Database
from bmjaya_backend.main import app, get_database, get_file_store
from bmjaya_backend.storage import FileStore

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup test directories after the session."""
    db_dir = str(Path(os.environ["BMJAYA_DB_PATH"]).parent)
    upload_dir = os.environ["BMJAYA_UPLOAD_DIR"]

    yield {
        "db": db_dir,
        "upload": upload_dir,
    }

    shutil.rmtree(db_dir, ignore_errors=True)
    shutil.rmtree(upload_dir, ignore_errors=True)


@pytest.fixture
def database(tmp_path):
    """A fresh database per test."""
    return Database(tmp_path / "test.db")


@pytest.fixture
def file_store():
    """File store on the directory the app serves under /uploads."""
    return FileStore(Path(os.environ["BMJAYA_UPLOAD_DIR"]))


@pytest.fixture
def client(database, file_store):
    """Create a test client wired to the per-test database."""
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_file_store] = lambda: file_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(database):
    database.ensure_admin(ADMIN_USERNAME, ADMIN_PASSWORD)
    return {"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}


@pytest.fixture
def auth_headers(client, admin):
    response = client.post("/api/login", json=admin)
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def sample_png():
    """Bytes that pass as a small PNG upload."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


@pytest.fixture
def create_order(client, auth_headers):
    """Factory creating an order through the API; returns the response JSON."""

    def _create(files=None, **fields):
        data = {"nama_pemesan": "Budi", "tanggal_order": "2024-05-01"}
        data.update({key: str(value) for key, value in fields.items()})
        response = client.post("/api/orders", data=data, files=files, headers=auth_headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _create


@pytest.fixture
def create_employee(client, auth_headers):
    def _create(nama, **fields):
        response = client.post("/api/employees", json={"nama": nama, **fields}, headers=auth_headers)
        assert response.status_code == 200, response.text
        return response.json()["employeeId"]

    return _create
