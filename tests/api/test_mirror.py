"""
Test the FTP mirror reconciliation and /ftp endpoints
"""

import ftplib
from datetime import datetime, timezone

from fastapi.testclient import TestClient
from sqlmodel import Session

from api.files.models import FileRecord, StorageSource
from api.files.registry import MemoryFileRegistry, SqlFileRegistry
from api.mirror import services as mirror_services
from api.mirror.services import reconcile_remote_mirror, sync_on_startup
from core.config import InMemoryDbSettings
from core.deps import get_remote_store
from main import app

UPLOADS = "public_html/uploads"


class FailingRegistry(MemoryFileRegistry):
    """Registry whose inserts fail after the first one"""

    def insert(self, record: FileRecord) -> FileRecord:
        if self.list_all():
            raise RuntimeError("database is locked")
        return super().insert(record)


class TestReconcile:
    """Test reconcile_remote_mirror"""

    def test_adds_unknown_files(self, mock_ftp_store):
        modified = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
        mock_ftp_store.add_file(f"{UPLOADS}/invoice.pdf", b"12345", modified=modified)
        mock_ftp_store.add_file(f"{UPLOADS}/photo.PNG", b"png")
        registry = MemoryFileRegistry()

        added = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        assert {r.stored_name for r in added} == {"invoice.pdf", "photo.PNG"}
        invoice = next(r for r in added if r.stored_name == "invoice.pdf")
        assert invoice.original_name == "invoice.pdf"
        assert invoice.mime_type == "application/pdf"
        assert invoice.size == 5
        assert invoice.uploaded_at == modified
        assert invoice.category == "uncategorized"
        assert invoice.source == StorageSource.FTP
        assert invoice.ftp_path == f"{UPLOADS}/invoice.pdf"
        assert invoice.is_processed is True
        photo = next(r for r in added if r.stored_name == "photo.PNG")
        assert photo.mime_type == "application/octet-stream"
        assert len(registry.list_all()) == 2

    def test_skips_directories_hidden_and_unlisted_types(self, mock_ftp_store):
        mock_ftp_store.add_dir(f"{UPLOADS}/archive.pdf")
        mock_ftp_store.add_file(f"{UPLOADS}/.hidden.pdf")
        mock_ftp_store.add_file(f"{UPLOADS}/notes.txt")
        mock_ftp_store.add_file(f"{UPLOADS}/setup.exe")
        mock_ftp_store.add_file(f"{UPLOADS}/sheet.xlsx")
        registry = MemoryFileRegistry()

        added = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        assert [r.stored_name for r in added] == ["sheet.xlsx"]

    def test_second_run_adds_nothing(self, mock_ftp_store):
        mock_ftp_store.add_file(f"{UPLOADS}/a.pdf")
        mock_ftp_store.add_file(f"{UPLOADS}/b.doc")
        registry = MemoryFileRegistry()

        first = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)
        second = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        assert len(first) == 2
        assert second == []
        assert len(registry.list_all()) == 2

    def test_known_names_are_left_alone(self, mock_ftp_store):
        registry = MemoryFileRegistry()
        existing = registry.insert(
            FileRecord(
                original_name="My Report.pdf",
                stored_name="My_Report.pdf",
                mime_type="application/pdf",
                category="receipts",
            )
        )
        mock_ftp_store.add_file(f"{UPLOADS}/My_Report.pdf")

        added = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        assert added == []
        assert registry.list_all() == [existing]
        assert existing.category == "receipts"

    def test_missing_directory_is_created(self, mock_ftp_store):
        added = reconcile_remote_mirror(MemoryFileRegistry(), mock_ftp_store, UPLOADS)

        assert added == []
        assert UPLOADS in mock_ftp_store.dirs

    def test_without_store(self):
        assert reconcile_remote_mirror(MemoryFileRegistry(), None, UPLOADS) == []

    def test_server_down(self, mock_ftp_store):
        mock_ftp_store.add_file(f"{UPLOADS}/a.pdf")
        mock_ftp_store.connected = False
        registry = MemoryFileRegistry()

        assert reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS) == []
        assert registry.list_all() == []

    def test_listing_error(self, mock_ftp_store):
        mock_ftp_store.list_error = ftplib.error_perm("550 Permission denied")

        assert reconcile_remote_mirror(MemoryFileRegistry(), mock_ftp_store, UPLOADS) == []

    def test_insert_error_is_logged_not_raised(self, mock_ftp_store):
        mock_ftp_store.add_file(f"{UPLOADS}/a.pdf")
        mock_ftp_store.add_file(f"{UPLOADS}/b.pdf")
        registry = FailingRegistry()

        added = reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        assert len(added) == 1
        assert len(registry.list_all()) == 1

    def test_with_database_registry(self, session: Session, mock_ftp_store):
        mock_ftp_store.add_file(f"{UPLOADS}/a.pdf", b"abc")
        registry = SqlFileRegistry(session)

        reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)
        reconcile_remote_mirror(registry, mock_ftp_store, UPLOADS)

        records = registry.list_all()
        assert [r.stored_name for r in records] == ["a.pdf"]
        assert records[0].source == StorageSource.FTP

    def test_synced_files_are_listed_and_viewable(
        self, client: TestClient, mock_ftp_store, session: Session
    ):
        mock_ftp_store.add_file(f"{UPLOADS}/remote.pdf", b"%PDF remote")
        reconcile_remote_mirror(SqlFileRegistry(session), mock_ftp_store, UPLOADS)

        listing = client.get("/api/files").json()
        assert listing["total"] == 1
        file_id = listing["files"][0]["id"]

        response = client.get(f"/api/files/{file_id}/view")
        assert response.status_code == 200
        assert response.content == b"%PDF remote"


class TestSyncOnStartup:
    """Test sync_on_startup"""

    def test_mirror_disabled(self):
        assert sync_on_startup(InMemoryDbSettings()) == []

    def test_sync_uses_fresh_session(self, monkeypatch, session: Session, mock_ftp_store):
        mock_ftp_store.add_file(f"{UPLOADS}/a.pdf")
        monkeypatch.setattr(mirror_services, "get_ftp_store", lambda settings: mock_ftp_store)
        monkeypatch.setattr(mirror_services, "get_engine", lambda: session.get_bind())

        added = sync_on_startup(InMemoryDbSettings())

        assert [r.stored_name for r in added] == ["a.pdf"]
        assert [r.stored_name for r in SqlFileRegistry(session).list_all()] == ["a.pdf"]


class TestPushAndRemove:
    """Test push_to_mirror and remove_from_mirror"""

    def test_push(self, mock_ftp_store, tmp_path):
        local = tmp_path / "a.pdf"
        local.write_bytes(b"abc")

        remote = mirror_services.push_to_mirror(mock_ftp_store, str(local), "a.pdf", UPLOADS)

        assert remote == f"{UPLOADS}/a.pdf"
        assert mock_ftp_store.files[remote] == b"abc"

    def test_push_without_store(self, tmp_path):
        assert mirror_services.push_to_mirror(None, str(tmp_path / "a.pdf"), "a.pdf", UPLOADS) is None

    def test_remove_without_store(self):
        assert mirror_services.remove_from_mirror(None, f"{UPLOADS}/a.pdf") is False


class TestFtpCheck:
    """Test GET /api/ftp/check"""

    def test_connected(self, client: TestClient):
        response = client.get("/api/ftp/check")

        assert response.status_code == 200
        assert response.json() == {"connected": True}

    def test_server_down(self, client: TestClient, mock_ftp_store):
        mock_ftp_store.connected = False

        assert client.get("/api/ftp/check").json() == {"connected": False}

    def test_mirror_disabled(self, offline_client: TestClient):
        assert offline_client.get("/api/ftp/check").json() == {"connected": False}

    def test_check_error(self, client: TestClient):
        class BrokenStore:
            def check(self):
                raise RuntimeError("boom")

        app.dependency_overrides[get_remote_store] = lambda: BrokenStore()

        response = client.get("/api/ftp/check")

        assert response.status_code == 500
        assert response.json() == {"connected": False, "message": "FTP check failed"}
