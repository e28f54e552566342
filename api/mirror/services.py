"""
Services for the FTP mirror: connection checks, pushes, and reconciliation
of the file registry against the remote uploads directory.
"""

import posixpath
import uuid
from datetime import datetime, timezone

from sqlmodel import Session

from api.files.models import DEFAULT_CATEGORY, FileRecord, StorageSource
from api.files.registry import FileRegistry, build_registry
from core.config import Settings
from core.db import get_engine
from core.ftp import FTPStore, get_ftp_store
from core.logger import logger

# Remote files with any other extension are ignored
ALLOWED_EXTENSIONS = {
    ".pdf", ".png", ".jpg", ".jpeg", ".gif", ".doc", ".docx", ".xls", ".xlsx"
}


def mime_type_for_extension(extension: str) -> str:
    """Only PDFs get a specific type; everything else is served as binary"""
    if extension == ".pdf":
        return "application/pdf"
    return "application/octet-stream"


def check_connection(store: FTPStore | None) -> bool:
    if store is None:
        return False
    return store.check()


def push_to_mirror(
    store: FTPStore | None, local_path: str, stored_name: str, uploads_dir: str
) -> str | None:
    """
    Copy a local file into the uploads directory.
    Returns the remote path, or None if the mirror is off or the push failed.
    """
    if store is None:
        return None
    store.ensure_dir(uploads_dir)
    remote_path = posixpath.join(uploads_dir, stored_name)
    if store.put(local_path, remote_path):
        return remote_path
    return None


def remove_from_mirror(store: FTPStore | None, remote_path: str) -> bool:
    if store is None:
        logger.warning("FTP mirror not configured; leaving %s in place", remote_path)
        return False
    return store.delete(remote_path)


def reconcile_remote_mirror(
    registry: FileRegistry,
    store: FTPStore | None,
    uploads_dir: str,
) -> list[FileRecord]:
    """
    Add registry records for files in the remote uploads directory that the
    registry does not know yet.

    Existing records are never changed or removed. Matching is by stored
    name, so two uploads that sanitize to the same name collapse into one
    record. Any failure is logged and treated as an empty listing; this
    function does not raise.

    Returns:
        The records that were added, in listing order
    """
    logger.info("Syncing files from FTP...")
    if store is None:
        logger.warning("FTP mirror not configured. Skipping sync.")
        return []

    try:
        if not store.check():
            logger.warning("FTP server unreachable. Skipping sync.")
            return []
        store.ensure_dir(uploads_dir)
        entries = store.list_dir(uploads_dir)
    except Exception as e:
        logger.warning("Error listing FTP uploads directory: %s", e)
        return []

    added: list[FileRecord] = []
    try:
        known = registry.stored_names()
        for entry in entries:
            if entry.is_dir or entry.name.startswith("."):
                continue

            extension = posixpath.splitext(entry.name)[1].lower()
            if extension not in ALLOWED_EXTENSIONS:
                continue
            if entry.name in known:
                continue

            record = FileRecord(
                id=uuid.uuid4(),
                original_name=entry.name,
                stored_name=entry.name,
                mime_type=mime_type_for_extension(extension),
                size=entry.size or 0,
                category=DEFAULT_CATEGORY,
                uploaded_at=entry.modified or datetime.now(timezone.utc),
                source=StorageSource.FTP,
                ftp_path=posixpath.join(uploads_dir, entry.name),
                is_processed=True,
            )
            registry.insert(record)
            known.add(entry.name)
            added.append(record)
    except Exception as e:
        logger.error("Error syncing FTP: %s", e)

    logger.info("Synced %d new files from FTP (%d entries listed).", len(added), len(entries))
    return added


def sync_on_startup(settings: Settings) -> list[FileRecord]:
    """Run one reconciliation pass with a fresh database session"""
    store = get_ftp_store(settings)
    with Session(get_engine()) as session:
        registry = build_registry(settings, session)
        return reconcile_remote_mirror(registry, store, settings.FTP_UPLOADS_DIR)
