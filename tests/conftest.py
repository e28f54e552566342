import os

# Must be set before the application modules read their settings
os.environ["SETTINGS_MODE"] = "test"

import ftplib
import posixpath
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from core.config import InMemoryDbSettings
from core.db import build_engine
from core.deps import get_db, get_app_settings, get_remote_store
from core.ftp import RemoteEntry
from api.auth.deps import get_current_user, get_session_store
from api.auth.models import SessionUser
from api.auth.services import SessionStore
from api.auth.timer import now_ms
from api.files.registry import memory_registry
from main import app


class MockFTPStore:
    """Mock FTP mirror for testing"""

    def __init__(self):
        self.files: dict[str, bytes] = {}  # remote path -> content
        self.modified: dict[str, datetime] = {}
        self.dirs: set[str] = set()
        self.connected = True  # For simulating an unreachable server
        self.fail_puts = False
        self.list_error: Exception | None = None
        self.deleted: list[str] = []

    def add_file(self, remote_path: str, content: bytes = b"data", modified: datetime | None = None):
        """Place a file on the mock server"""
        self.files[remote_path] = content
        if modified is not None:
            self.modified[remote_path] = modified

    def add_dir(self, remote_path: str):
        self.dirs.add(remote_path.strip("/"))

    def check(self) -> bool:
        return self.connected

    def ensure_dir(self, path: str) -> bool:
        if not self.connected:
            return False
        self.dirs.add(path.strip("/"))
        return True

    def list_dir(self, path: str) -> list[RemoteEntry]:
        if not self.connected:
            raise ConnectionRefusedError("mock FTP server is down")
        if self.list_error is not None:
            raise self.list_error
        path = path.strip("/")
        entries = []
        for directory in sorted(self.dirs):
            if directory != path and posixpath.dirname(directory) == path:
                entries.append(RemoteEntry(name=posixpath.basename(directory), is_dir=True))
        for remote_path, content in self.files.items():
            if posixpath.dirname(remote_path.strip("/")) == path:
                entries.append(
                    RemoteEntry(
                        name=posixpath.basename(remote_path),
                        is_dir=False,
                        size=len(content),
                        modified=self.modified.get(remote_path),
                    )
                )
        return entries

    def put(self, local_path: str, remote_path: str) -> bool:
        if not self.connected or self.fail_puts:
            return False
        with open(local_path, "rb") as fh:
            self.files[remote_path] = fh.read()
        return True

    def open_read(self, remote_path: str, chunk_size: int = 65536):
        if not self.connected:
            raise ConnectionRefusedError("mock FTP server is down")
        if remote_path not in self.files:
            raise ftplib.error_perm("550 No such file or directory")
        content = self.files[remote_path]
        return iter([content[i:i + chunk_size] for i in range(0, len(content), chunk_size)] or [b""])

    def delete(self, remote_path: str) -> bool:
        if not self.connected or remote_path not in self.files:
            return False
        del self.files[remote_path]
        self.deleted.append(remote_path)
        return True


@pytest.fixture(name="session")
def session_fixture():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="test_settings")
def test_settings_fixture(tmp_path):
    """Test settings with uploads written under tmp_path"""
    return InMemoryDbSettings(UPLOAD_DIR=str(tmp_path / "uploads"))


@pytest.fixture(name="mock_ftp_store")
def mock_ftp_store_fixture():
    """Provide a mock FTP store for testing"""
    return MockFTPStore()


@pytest.fixture(name="test_user")
def test_user_fixture():
    return SessionUser(
        session_id="test-session",
        id="00000000-0000-0000-0000-000000000001",
        username="tester",
        expires_at=now_ms() + 30 * 60 * 1000,
    )


@pytest.fixture(autouse=True)
def reset_memory_registry():
    memory_registry.clear()
    yield
    memory_registry.clear()


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    test_settings: InMemoryDbSettings,
    mock_ftp_store: MockFTPStore,
    test_user: SessionUser,
):
    """Logged in client with the mock FTP mirror"""
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_remote_store] = lambda: mock_ftp_store
    app.dependency_overrides[get_current_user] = lambda: test_user

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="offline_client")
def offline_client_fixture(
    session: Session,
    test_settings: InMemoryDbSettings,
    test_user: SessionUser,
):
    """Logged in client with the FTP mirror switched off"""
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_remote_store] = lambda: None
    app.dependency_overrides[get_current_user] = lambda: test_user

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="session_store")
def session_store_fixture():
    return SessionStore()


@pytest.fixture(name="anon_client")
def anon_client_fixture(
    session: Session,
    test_settings: InMemoryDbSettings,
    session_store: SessionStore,
):
    """Client without a session; exercises the real login flow"""
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_remote_store] = lambda: None
    app.dependency_overrides[get_session_store] = lambda: session_store

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
